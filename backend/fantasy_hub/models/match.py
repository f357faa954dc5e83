from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional

from fantasy_hub.models.player import PredictedPlayer, RosterPlayer


METHOD_CROSS_REFERENCE = "cross-reference-id"
METHOD_NAME_TEAM = "name+team-heuristic"
METHOD_NO_MATCH = "no-match"


class Confidence(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()


# Weights used for the average-confidence summary
CONFIDENCE_VALUES = {
    Confidence.HIGH: 1.0,
    Confidence.MEDIUM: 0.7,
    Confidence.LOW: 0.4,
}


@dataclass(frozen=True)
class MatchResult:
    roster_player: RosterPlayer
    predicted_player: Optional[PredictedPlayer] = None
    confidence: Optional[Confidence] = None
    method: str = METHOD_NO_MATCH
    ambiguous: bool = False
    candidates_considered: int = 0

    def __post_init__(self):
        if self.confidence == Confidence.HIGH and self.method != METHOD_CROSS_REFERENCE:
            raise ValueError("High confidence is reserved for cross-reference matches")
        if self.predicted_player is None and self.confidence is not None:
            raise ValueError("A no-match result cannot carry a confidence level")

    @property
    def is_match(self) -> bool:
        return self.predicted_player is not None


@dataclass
class MatchReport:
    """Outcome of matching a whole roster against the prediction pool."""
    results: List[MatchResult]
    duplicate_cross_refs: Dict[str, List[str]] = field(default_factory=dict)
    by_method: Dict[str, int] = field(default_factory=dict)
    by_confidence: Dict[str, int] = field(default_factory=dict)
    ambiguous: int = 0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def matched(self) -> int:
        return sum(1 for r in self.results if r.is_match)

    @property
    def unmatched(self) -> int:
        return self.total - self.matched

    @property
    def match_rate(self) -> float:
        if not self.results:
            return 0.0
        return round(self.matched / self.total * 100, 1)

    @property
    def average_confidence(self) -> float:
        matches = [r for r in self.results if r.is_match]
        if not matches:
            return 0.0
        total = sum(CONFIDENCE_VALUES.get(r.confidence, 0.0) for r in matches)
        return round(total / len(matches) * 100, 1)

    @classmethod
    def from_results(
        cls,
        results: List[MatchResult],
        duplicate_cross_refs: Optional[Dict[str, List[str]]] = None,
    ) -> "MatchReport":
        report = cls(results=results, duplicate_cross_refs=duplicate_cross_refs or {})
        for result in results:
            report.by_method[result.method] = report.by_method.get(result.method, 0) + 1
            label = result.confidence.label if result.confidence else "None"
            report.by_confidence[label] = report.by_confidence.get(label, 0) + 1
            if result.ambiguous:
                report.ambiguous += 1
        return report
