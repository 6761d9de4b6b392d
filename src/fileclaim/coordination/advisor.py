"""Assignment advisor: ranks agents for a set of files and a task.

Scores combine three signals:
- file pattern expertise (each file matching an agent pattern: +10)
- task keywords (+20 for a keyword in a primary area, +10 otherwise)
- current workload from the unified view (busy agents score lower)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from fileclaim.config.schema import AdvisorConfig

if TYPE_CHECKING:
    from fileclaim.agents.registry import AgentRegistry
    from fileclaim.agents.schema import AgentProfile
    from fileclaim.coordination.schema import UnifiedView

FILE_MATCH_SCORE = 10
PRIMARY_KEYWORD_SCORE = 20
KEYWORD_SCORE = 10
MAX_WORKLOAD_SCORE = 100


@dataclass
class Recommendation:
    """One agent's suitability for a handoff."""

    agent: str
    score: float
    breakdown: dict[str, float] = field(default_factory=dict)  # files, task, workload
    status: str = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent": self.agent,
            "score": self.score,
            "breakdown": self.breakdown,
            "status": self.status,
        }


class AssignmentAdvisor:
    """Weighted keyword/pattern matcher over the known agents."""

    def __init__(self, registry: AgentRegistry, config: AdvisorConfig | None = None) -> None:
        self._registry = registry
        self._config = config or AdvisorConfig()

    def file_score(self, profile: AgentProfile, files: list[str]) -> float:
        return float(sum(FILE_MATCH_SCORE for f in files if profile.matches_file(f)))

    def task_score(self, profile: AgentProfile, task: str) -> float:
        task_lower = task.lower()
        score = 0
        for keyword in profile.task_keywords:
            kw = keyword.lower()
            if kw not in task_lower:
                continue
            if any(area.lower() in kw for area in profile.primary):
                score += PRIMARY_KEYWORD_SCORE
            else:
                score += KEYWORD_SCORE
        return float(score)

    def workload_score(self, agent: str, view: UnifiedView | None) -> tuple[float, str]:
        """Inverted workload penalty, plus the status it was based on."""
        state = view.agents.get(agent) if view else None
        if state is None:
            return float(MAX_WORKLOAD_SCORE), "unknown"
        status = state.status.value
        penalty = self._config.workload_penalties.get(status, 0.0)
        return max(0.0, MAX_WORKLOAD_SCORE - penalty), status

    def recommend(
        self,
        files: list[str],
        task: str,
        view: UnifiedView | None = None,
        exclude: set[str] | None = None,
    ) -> list[Recommendation]:
        """Rank agents by suitability, best first.

        Args:
            files: Files being handed off
            task: Task description
            view: Current unified view for workload, if available
            exclude: Agents to leave out (e.g., the one releasing)

        Returns:
            Recommendations sorted by score, ties in registry order
        """
        cfg = self._config
        recommendations: list[Recommendation] = []
        for profile in self._registry.list_profiles():
            if exclude and profile.id in exclude:
                continue
            files_pts = self.file_score(profile, files)
            task_pts = self.task_score(profile, task)
            workload_pts, status = self.workload_score(profile.id, view)
            total = (
                files_pts * cfg.file_weight
                + task_pts * cfg.task_weight
                + workload_pts * cfg.workload_weight
            )
            recommendations.append(
                Recommendation(
                    agent=profile.id,
                    score=round(total, 2),
                    breakdown={"files": files_pts, "task": task_pts, "workload": workload_pts},
                    status=status,
                )
            )

        recommendations.sort(key=lambda r: r.score, reverse=True)
        return recommendations
