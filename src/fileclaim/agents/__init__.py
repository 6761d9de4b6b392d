"""Known agent identities and their expertise."""

from fileclaim.agents.registry import AgentRegistry
from fileclaim.agents.schema import AgentProfile

__all__ = [
    "AgentProfile",
    "AgentRegistry",
]
