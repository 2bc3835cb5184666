"""Local process runtime for Agent."""

from gamehub_agent.config import AgentConfig, get_agent_config
from gamehub_agent.runtimes.local.directory import InstanceDirectory
from gamehub_agent.runtimes.local.installer import DependencyInstaller
from gamehub_agent.runtimes.local.paths import InstancePaths
from gamehub_agent.runtimes.local.ports import PortConflictResolver, create_port_resolver
from gamehub_agent.runtimes.local.readiness import ReadinessProbe
from gamehub_agent.runtimes.local.supervisor import ProcessSupervisor
from gamehub_agent.runtimes.local.template import TemplateStore


class LocalRuntime:
    """Local runtime combining template, directory, install, port and process management."""

    def __init__(self, config: AgentConfig | None = None) -> None:
        self._config = config or get_agent_config()
        self.paths = InstancePaths(self._config)

        self.templates = TemplateStore(
            root_folder=self._config.template.root_folder,
            staging_parent=self._config.template.staging_dir,
        )
        self.directories = InstanceDirectory()
        self.installer = DependencyInstaller(self._config.install)
        self.ports = create_port_resolver(self._config.ports)
        self.readiness = ReadinessProbe(self._config.readiness)
        self.processes = ProcessSupervisor(
            self._config.process,
            self.ports,
            forward_output=self._config.logging.child_output,
        )


__all__ = [
    "LocalRuntime",
    "InstanceDirectory",
    "DependencyInstaller",
    "InstancePaths",
    "PortConflictResolver",
    "ProcessSupervisor",
    "ReadinessProbe",
    "TemplateStore",
]
