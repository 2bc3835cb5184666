"""GameHub Agent: lifecycle orchestrator for an ephemeral frontend/backend instance."""

__version__ = "0.1.0"
