"""
Identity matching between league-platform players and prediction-provider
players.

Two tiers, tried in order:
1. Cross-reference id (Opta) equality - the only path that yields High
   confidence.
2. Name + team heuristic - Medium confidence, and only when exactly one
   candidate qualifies. Ambiguity is a no-match, never a coin flip.

A wrong match silently corrupts a player's value, so the matcher prefers
leaving a player unmatched.
"""
import logging
from typing import Dict, Iterable, List, Sequence, Set

from fantasy_hub.models import (
    METHOD_CROSS_REFERENCE,
    METHOD_NAME_TEAM,
    Confidence,
    MatchReport,
    MatchResult,
    PredictedPlayer,
    RosterPlayer,
)
from fantasy_hub.utils import normalize_identifier, normalize_name, normalize_team

logger = logging.getLogger(__name__)

# Shortest surname token allowed to match on its own
MIN_SURNAME_LENGTH = 3


def names_match(name1: str, name2: str) -> bool:
    """
    Heuristic name comparison on normalized names.

    True when either full name contains the other ("salah" in "mohamed
    salah"), or when the surnames contain one another ("a smith" vs
    "andrew smith"). No edit distance or transliteration.
    """
    norm1 = normalize_name(name1)
    norm2 = normalize_name(name2)
    if not norm1 or not norm2:
        return False
    if norm1 in norm2 or norm2 in norm1:
        return True

    surname1 = norm1.split()[-1]
    surname2 = norm2.split()[-1]
    if min(len(surname1), len(surname2)) < MIN_SURNAME_LENGTH:
        return False
    return surname1 in surname2 or surname2 in surname1


class IdentityMatcher:
    """Finds the single best prediction-side counterpart for a roster player."""

    def __init__(self, allow_heuristics: bool = True):
        self.allow_heuristics = allow_heuristics

    def match(
        self,
        roster_player: RosterPlayer,
        candidates: Sequence[PredictedPlayer],
        use_cross_reference: bool = True,
    ) -> MatchResult:
        """
        Match one roster player against the candidate pool.

        Pure with respect to its inputs: the same player and candidates
        always produce the same MatchResult.
        """
        # TIER 1: cross-reference id
        roster_ref = normalize_identifier(roster_player.cross_ref_id)
        if use_cross_reference and roster_ref:
            for candidate in candidates:
                if normalize_identifier(candidate.cross_ref_id) == roster_ref:
                    return MatchResult(
                        roster_player=roster_player,
                        predicted_player=candidate,
                        confidence=Confidence.HIGH,
                        method=METHOD_CROSS_REFERENCE,
                        candidates_considered=1,
                    )

        if not self.allow_heuristics:
            return MatchResult(roster_player=roster_player)

        # TIER 2: name + team
        roster_team = normalize_team(roster_player.team)
        if not roster_team:
            return MatchResult(roster_player=roster_player)

        qualifying = [
            candidate for candidate in candidates
            if normalize_team(candidate.team) == roster_team
            and names_match(roster_player.name, candidate.name)
        ]

        if len(qualifying) == 1:
            return MatchResult(
                roster_player=roster_player,
                predicted_player=qualifying[0],
                confidence=Confidence.MEDIUM,
                method=METHOD_NAME_TEAM,
                candidates_considered=1,
            )

        if len(qualifying) > 1:
            logger.warning(
                "Ambiguous match for %s (%s): %d candidates [%s], leaving unmatched",
                roster_player.name,
                roster_team,
                len(qualifying),
                ", ".join(c.name for c in qualifying),
            )
            return MatchResult(
                roster_player=roster_player,
                ambiguous=True,
                candidates_considered=len(qualifying),
            )

        return MatchResult(roster_player=roster_player)

    def match_all(
        self,
        roster_players: Iterable[RosterPlayer],
        candidates: Sequence[PredictedPlayer],
    ) -> MatchReport:
        """
        Match every roster player in source order.

        A predicted player is claimed by at most one roster player. Roster
        players repeating an already-seen cross-reference id are reported in
        ``duplicate_cross_refs`` and only eligible for the heuristic tier.
        """
        results: List[MatchResult] = []
        used_ids: Set[str] = set()
        first_owner_of_ref: Dict[str, str] = {}
        duplicates: Dict[str, List[str]] = {}

        for roster_player in roster_players:
            ref = normalize_identifier(roster_player.cross_ref_id)
            use_cross_reference = True
            if ref:
                if ref in first_owner_of_ref:
                    duplicates.setdefault(ref, [first_owner_of_ref[ref]]).append(roster_player.player_id)
                    use_cross_reference = False
                    logger.warning(
                        "Duplicate cross-reference id %s on roster player %s (first seen on %s)",
                        ref,
                        roster_player.player_id,
                        first_owner_of_ref[ref],
                    )
                else:
                    first_owner_of_ref[ref] = roster_player.player_id

            available = [c for c in candidates if c.provider_id not in used_ids]
            result = self.match(roster_player, available, use_cross_reference=use_cross_reference)
            if result.is_match:
                used_ids.add(result.predicted_player.provider_id)
            results.append(result)

        report = MatchReport.from_results(results, duplicates)
        logger.info(
            "Matched %d/%d roster players (%.1f%%) against %d predictions: %s",
            report.matched,
            report.total,
            report.match_rate,
            len(candidates),
            report.by_method,
        )
        return report

