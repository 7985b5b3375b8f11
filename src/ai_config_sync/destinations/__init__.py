"""Agent target locations."""

from .agent_targets import AgentEndpoint, discover_endpoints

__all__ = ["AgentEndpoint", "discover_endpoints"]
