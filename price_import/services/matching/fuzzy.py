"""Fuzzy name matching by escalating token overlap.

Supplier names and catalog names share substrings but differ in word
order, punctuation and qualifiers. Instead of one whole-string score, the
search counts how many catalog tokens occur in the row name, and breaks
ties by moving to longer runs of consecutive tokens (n-grams):

    level 0: "steel", "hex", "bolt", "m8"
    level 1: "steelhex", "hexbolt", "boltm8"
    level 2: "steelhexbolt", "hexboltm8"

Each n-gram is looked up as a substring of the row name with spaces
removed. The first level with a unique best candidate decides.
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import structlog
from rapidfuzz import fuzz

from price_import.config import matching_settings
from price_import.models.matching import Confidence, MatchMethod, MatchResult
from price_import.services.matching.matcher import CandidateEntry, MatcherStrategy
from price_import.services.normalizer import normalize_text

logger = structlog.get_logger(__name__)


def build_ngrams(tokens: Sequence[str], level: int) -> List[str]:
    """Concatenate every run of level + 1 consecutive tokens."""
    size = level + 1
    return ["".join(tokens[i:i + size]) for i in range(len(tokens) - size + 1)]


def count_ngram_hits(tokens: Sequence[str], level: int, haystack: str) -> int:
    """Count the candidate's level n-grams found in the space-free row name."""
    return sum(1 for gram in build_ngrams(tokens, level) if gram in haystack)


@dataclass(frozen=True)
class EscalationOutcome:
    """Where the token-overlap search stopped.

    Attributes:
        winner: Chosen candidate
        level: Escalation level that decided (or the last level with hits)
        hits: Matched n-gram count of the winner at that level
        ambiguous: Tie that no higher level could break
        tied: Candidates still tied when the search stopped
    """
    winner: CandidateEntry
    level: int
    hits: int
    ambiguous: bool
    tied: Tuple[CandidateEntry, ...] = ()


def escalate(row_text: str, entries: Sequence[CandidateEntry]) -> Optional[EscalationOutcome]:
    """Run the escalating n-gram search.

    Args:
        row_text: Normalized row name
        entries: Candidates; those without tokens are ignored

    Returns:
        Outcome, or None when no token of any candidate occurs in the row
    """
    haystack = row_text.replace(" ", "")
    contenders = [entry for entry in entries if entry.tokens]
    if not haystack or not contenders:
        return None

    level = 0
    previous: Optional[Tuple[List[CandidateEntry], int]] = None
    while True:
        scored = [(entry, count_ngram_hits(entry.tokens, level, haystack)) for entry in contenders]
        best = max(hits for _, hits in scored)

        if best == 0:
            if previous is None:
                return None
            # Higher level separated nobody: the previous tie stands
            tied, hits = previous
            return EscalationOutcome(tied[0], level - 1, hits, ambiguous=True, tied=tuple(tied))

        tied = [entry for entry, hits in scored if hits == best]
        if len(tied) == 1:
            return EscalationOutcome(tied[0], level, best, ambiguous=False)

        if not any(len(entry.tokens) >= level + 2 for entry in tied):
            return EscalationOutcome(tied[0], level, best, ambiguous=True, tied=tuple(tied))

        previous = (tied, best)
        contenders = tied
        level += 1


def coverage_confidence(hits: int, level: int, token_count: int) -> Tuple[float, Confidence]:
    """Map the share of the candidate's name covered by hits to a confidence."""
    coverage = min(1.0, hits * (level + 1) / token_count) if token_count else 0.0
    if coverage >= matching_settings.fuzzy_high_coverage:
        return coverage, Confidence.HIGH
    if coverage >= matching_settings.fuzzy_medium_coverage:
        return coverage, Confidence.MEDIUM
    return coverage, Confidence.LOW


class FuzzyNameMatcher(MatcherStrategy):
    """Matches by escalating token overlap between row and catalog names.

    Runs last, when code-based strategies found nothing or the row has no
    usable code. A tie that cannot be broken returns the first tied
    candidate flagged ambiguous with low confidence, so it is never
    applied without confirmation.
    """

    priority = 100
    method = MatchMethod.FUZZY_NAME

    def match(self, row, candidates, prior_map, supplier_id=None):
        row_text = normalize_text(row.name)
        outcome = escalate(row_text, candidates.entries)
        if outcome is None:
            return None

        winner = outcome.winner
        coverage, confidence = coverage_confidence(outcome.hits, outcome.level, len(winner.tokens))
        if outcome.ambiguous:
            confidence = Confidence.LOW

        diagnostics = {
            "level": outcome.level,
            "matched_ngrams": outcome.hits,
            "token_coverage": round(coverage, 4),
            "similarity": round(fuzz.token_set_ratio(row_text, winner.normalized_name), 2),
        }
        if winner.is_variant:
            diagnostics["variant"] = True
            diagnostics["parent_id"] = winner.parent_id
        if outcome.ambiguous:
            diagnostics["tied_product_ids"] = [entry.item.id for entry in outcome.tied]
            logger.debug(
                "fuzzy_match_ambiguous",
                supplier_id=supplier_id,
                row_number=row.row_number,
                tied=len(outcome.tied),
                level=outcome.level,
            )

        return MatchResult(
            product_id=winner.item.id,
            confidence=confidence,
            method=self.method,
            ambiguous=outcome.ambiguous,
            diagnostics=diagnostics,
        )
