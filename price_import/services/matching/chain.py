"""Matcher chain: ordered, first-match-wins product matching."""
from typing import Iterable, List, Optional, Sequence, Union

import structlog

from price_import.models.catalog import CatalogItem
from price_import.models.matching import MatchedRow, MatchReport, MatchResult, MatchStats
from price_import.models.normalized_row import NormalizedRow
from price_import.models.template import MatchedProductsMap
from price_import.services.matching.fuzzy import FuzzyNameMatcher
from price_import.services.matching.matcher import (
    CandidatePool,
    ExactCodeMatcher,
    MatcherStrategy,
    PriorMappingMatcher,
)

logger = structlog.get_logger(__name__)

Candidates = Union[CandidatePool, Sequence[CatalogItem]]


class MatcherChain:
    """Runs strategies in descending priority; the first non-None result wins.

    This is not best-of-all: a lower priority strategy never overrides a
    higher one, even with a better score.
    """

    def __init__(self, strategies: Iterable[MatcherStrategy]):
        self._strategies: List[MatcherStrategy] = sorted(
            strategies, key=lambda s: s.priority, reverse=True
        )
        if not self._strategies:
            raise ValueError("MatcherChain needs at least one strategy")

    @property
    def strategies(self) -> List[MatcherStrategy]:
        return list(self._strategies)

    @staticmethod
    def _pool(candidates: Candidates) -> CandidatePool:
        if isinstance(candidates, CandidatePool):
            return candidates
        return CandidatePool.from_items(candidates)

    def match_one(
        self,
        row: NormalizedRow,
        candidates: Candidates,
        prior_map: Optional[MatchedProductsMap] = None,
        supplier_id: Optional[str] = None,
    ) -> Optional[MatchResult]:
        """Match a single row, returning None when no strategy matched."""
        pool = self._pool(candidates)
        prior = prior_map if prior_map is not None else MatchedProductsMap()
        for strategy in self._strategies:
            result = strategy.match(row, pool, prior, supplier_id)
            if result is not None:
                return result
        return None

    def match_all(
        self,
        rows: Sequence[NormalizedRow],
        candidates: Candidates,
        prior_map: Optional[MatchedProductsMap] = None,
        supplier_id: Optional[str] = None,
    ) -> MatchReport:
        """Match a batch of rows.

        Candidates are tokenized once for the whole batch.

        Returns:
            MatchReport with matched rows, unmatched rows and stats
        """
        pool = self._pool(candidates)
        prior = prior_map if prior_map is not None else MatchedProductsMap()
        report = MatchReport(stats=MatchStats(total=len(rows)))

        for row in rows:
            result = self.match_one(row, pool, prior, supplier_id)
            if result is None:
                report.unmatched.append(row)
                continue
            entry = pool.get(result.product_id)
            report.matched.append(
                MatchedRow(
                    row=row,
                    match=result,
                    product_name=entry.item.name if entry is not None else None,
                )
            )
            report.stats.record(result)

        report.stats.unmatched = len(report.unmatched)
        logger.info(
            "match_pass_completed",
            supplier_id=supplier_id,
            total=report.stats.total,
            matched=report.stats.matched,
            unmatched=report.stats.unmatched,
            ambiguous=report.stats.ambiguous,
            by_method=report.stats.by_method,
        )
        return report


def create_matcher_chain(strategies: Optional[Iterable[MatcherStrategy]] = None) -> MatcherChain:
    """Factory for the chain.

    Args:
        strategies: Custom strategies; defaults to prior-mapping, exact-code
                    and fuzzy-name

    Returns:
        MatcherChain instance
    """
    if strategies is None:
        strategies = [PriorMappingMatcher(), ExactCodeMatcher(), FuzzyNameMatcher()]
    return MatcherChain(strategies)
