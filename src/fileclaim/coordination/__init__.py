"""File-claim coordination between agents sharing one checkout.

Each agent records what it is working on in its own state document; the
unified view reconciles them into one ownership table. Claims on files held
by a live agent are refused unless forced; claims held by agents whose
heartbeat has gone quiet can be taken over.
"""

from fileclaim.coordination.advisor import AssignmentAdvisor, Recommendation
from fileclaim.coordination.errors import (
    ClaimBlock,
    ClaimConflict,
    CoordinationError,
    CorruptState,
    NoActiveWork,
    PersistenceError,
    UnknownAgent,
)
from fileclaim.coordination.handoff import HandoffLog
from fileclaim.coordination.protocol import (
    ClaimProtocol,
    ClaimResult,
    ReleaseResult,
    StatusReport,
)
from fileclaim.coordination.schema import (
    AgentState,
    AgentStatus,
    ConflictRecord,
    CurrentWork,
    FileOwnership,
    HandoffEntry,
    Progress,
    StaleAgent,
    UnifiedView,
    WorkRecord,
)
from fileclaim.coordination.store import (
    AgentStateStore,
    MemoryBackend,
    StateBackend,
    YamlFileBackend,
)
from fileclaim.coordination.view import UnifiedViewBuilder, classify

__all__ = [
    # Schema
    "AgentState",
    "AgentStatus",
    "ConflictRecord",
    "CurrentWork",
    "FileOwnership",
    "HandoffEntry",
    "Progress",
    "StaleAgent",
    "UnifiedView",
    "WorkRecord",
    # Errors
    "ClaimBlock",
    "ClaimConflict",
    "CoordinationError",
    "CorruptState",
    "NoActiveWork",
    "PersistenceError",
    "UnknownAgent",
    # Storage
    "AgentStateStore",
    "MemoryBackend",
    "StateBackend",
    "YamlFileBackend",
    # Reconciliation and protocol
    "AssignmentAdvisor",
    "ClaimProtocol",
    "ClaimResult",
    "HandoffLog",
    "Recommendation",
    "ReleaseResult",
    "StatusReport",
    "UnifiedViewBuilder",
    "classify",
]
