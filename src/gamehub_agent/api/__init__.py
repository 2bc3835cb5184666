"""Agent API: error types, dependencies and v1 routers."""
