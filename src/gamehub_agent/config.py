"""Agent configuration using pydantic-settings.

Configuration hierarchy:
- TemplateConfig: Template archive location and layout
- InstanceConfig: Instance directory and role subdirectories
- InstallConfig: Package-install command
- PortConfig: Fixed role ports and port conflict resolution
- ProcessConfig: Dev-server command and stop behaviour
- ReadinessConfig: Readiness probing after spawn
- LoggingConfig: Logging behavior
- ServerConfig: Control API server
- AgentConfig: Main config aggregating all sub-configs

Environment variable prefix: AGENT_
Example: AGENT_PORTS_FRONTEND=5174
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TemplateConfig(BaseSettings):
    """Template archive configuration."""

    model_config = SettingsConfigDict(env_prefix="AGENT_TEMPLATE_")

    archive_path: Path = Field(
        default=Path("files/ReactNodeTemplate.zip"),
        description="Packaged template archive (.zip or .tar.*)",
    )
    root_folder: str = Field(
        default="ReactNodeTemplate",
        description="Top-level folder inside the archive to hoist into the instance root",
    )
    staging_dir: Path | None = Field(
        default=None,
        description="Extraction staging location (default: next to the instance directory)",
    )


class InstanceConfig(BaseSettings):
    """Instance directory configuration."""

    model_config = SettingsConfigDict(env_prefix="AGENT_INSTANCE_")

    path: Path = Field(
        default=Path("generated_games/current_game"),
        description="Working directory of the single instance",
    )
    frontend_dir: str = Field(default="frontend", description="Frontend project subdirectory")
    backend_dir: str = Field(default="backend", description="Backend project subdirectory")
    public_host: str = Field(default="localhost", description="Host used when reporting URLs")


class InstallConfig(BaseSettings):
    """Dependency install configuration."""

    model_config = SettingsConfigDict(env_prefix="AGENT_INSTALL_")

    command: str = Field(default="npm install", description="Package-install command")
    timeout: float = Field(default=300.0, gt=0, description="Install timeout (seconds)")
    stderr_tail_chars: int = Field(
        default=2000,
        gt=0,
        description="Characters of stderr kept on InstallError",
    )


class PortConfig(BaseSettings):
    """Port configuration.

    Ports are fixed across restarts, so a listener left behind by a previous
    run is the usual cause of a failed start. Every kill or bind goes through
    the configured resolver strategy.
    """

    model_config = SettingsConfigDict(env_prefix="AGENT_PORTS_")

    frontend: int = Field(default=5173, ge=1, le=65535)
    backend: int = Field(default=5000, ge=1, le=65535)

    strategy: Literal["psutil", "lsof"] = Field(
        default="psutil",
        description="Port inspection backend",
    )
    release_timeout: float = Field(default=5.0, gt=0, description="Max wait for a port to free up")
    poll_interval: float = Field(default=0.1, gt=0, description="Port poll interval (seconds)")
    term_grace: float = Field(
        default=1.0,
        ge=0,
        description="Seconds between SIGTERM and SIGKILL when releasing a port",
    )
    tool_timeout: float = Field(default=5.0, gt=0, description="Timeout for lsof invocations")

    @model_validator(mode="after")
    def _distinct_ports(self) -> "PortConfig":
        if self.frontend == self.backend:
            raise ValueError("frontend and backend ports must differ")
        return self


class ProcessConfig(BaseSettings):
    """Dev-server process configuration."""

    model_config = SettingsConfigDict(env_prefix="AGENT_PROCESS_")

    command: str = Field(default="npm run dev", description="Dev-server command per role")
    startup_delay: float = Field(
        default=3.0,
        ge=0,
        description="Time a process must stay alive before it counts as started",
    )
    stop_timeout: float = Field(default=5.0, gt=0, description="Grace period before SIGKILL")
    port_env_var: str = Field(default="PORT", description="Env var carrying the role port")


class ReadinessConfig(BaseSettings):
    """Readiness probe configuration."""

    model_config = SettingsConfigDict(env_prefix="AGENT_READINESS_")

    enabled: bool = Field(default=True)
    mode: Literal["tcp", "http"] = Field(default="tcp")
    timeout: float = Field(default=30.0, gt=0, description="Max wait for readiness (seconds)")
    interval: float = Field(default=0.25, gt=0, description="Probe interval (seconds)")
    required: bool = Field(
        default=False,
        description="Fail start() when a role never becomes ready",
    )


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Supports both text and JSON formats for different environments:
    - text: Human-readable for local development
    - json: Structured logging for production (log aggregation)
    """

    model_config = SettingsConfigDict(env_prefix="AGENT_LOGGING_")

    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="text", description="Log format (text, json)")
    service_name: str = Field(default="gamehub-agent", description="Service identifier in logs")
    child_output: bool = Field(
        default=True,
        description="Forward dev-server stdout/stderr to the log",
    )


class ServerConfig(BaseSettings):
    """HTTP server configuration."""

    model_config = SettingsConfigDict(env_prefix="AGENT_SERVER_")

    host: str = Field(default="0.0.0.0", description="Server bind address")
    port: int = Field(default=8089, description="Server port")
    api_key: str = Field(default="", description="API key for authentication")
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins",
    )
    stop_on_shutdown: bool = Field(
        default=True,
        description="Stop dev servers when the agent shuts down",
    )
    reconcile_on_startup: Literal["adopt", "release", "ignore"] = Field(
        default="adopt",
        description="What to do with listeners found on the role ports at startup",
    )


class AgentConfig(BaseSettings):
    """Main agent configuration aggregating all sub-configs.

    Environment variable prefix: AGENT_
    Sub-configs use their own prefixes (AGENT_PORTS_, AGENT_INSTALL_, etc.)
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENT_",
        env_nested_delimiter="__",
    )

    template: TemplateConfig = Field(default_factory=TemplateConfig)
    instance: InstanceConfig = Field(default_factory=InstanceConfig)
    install: InstallConfig = Field(default_factory=InstallConfig)
    ports: PortConfig = Field(default_factory=PortConfig)
    process: ProcessConfig = Field(default_factory=ProcessConfig)
    readiness: ReadinessConfig = Field(default_factory=ReadinessConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


@lru_cache
def get_agent_config() -> AgentConfig:
    """Get cached agent configuration singleton."""
    return AgentConfig()
