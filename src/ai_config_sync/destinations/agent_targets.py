"""Agent target roots and endpoint discovery."""

from dataclasses import dataclass
from typing import List, Optional

from ..config.mapping import MappingResolver
from ..config.settings import AGENTS, AppSettings


@dataclass
class AgentEndpoint:
    """A location an agent reads configuration from."""
    agent: str
    kind: str  # "root" or "target"
    path: str
    exists: bool
    category: Optional[str] = None


def discover_endpoints(settings: AppSettings, resolver: MappingResolver) -> List[AgentEndpoint]:
    """List each agent's root directory followed by its mapped target files.

    Args:
        settings: Application settings
        resolver: Resolver over the current mapping

    Returns:
        Endpoints grouped by agent in the fixed agent order
    """
    endpoints = []
    for agent in AGENTS:
        root = settings.agent_root(agent)
        endpoints.append(AgentEndpoint(agent=agent, kind="root", path=str(root),
                                       exists=root.is_dir()))

        for category in resolver.config.categories:
            resolved = resolver.resolve(category, agent)
            if resolved is None:
                continue
            target = root / resolved.target_relative_path
            endpoints.append(AgentEndpoint(
                agent=agent,
                kind="target",
                path=str(target),
                exists=target.is_file(),
                category=category,
            ))

    return endpoints
