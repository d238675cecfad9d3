"""Product matching strategies.

This module implements the Strategy pattern for matching normalized price
list rows to catalog items. Strategies are stateless and tried in priority
order by the MatcherChain; the first non-None result wins.

Key Components:
    - CandidatePool: Catalog items flattened with their variants, indexed once per batch
    - MatcherStrategy: Abstract base class for matching algorithms
    - PriorMappingMatcher: Uses the template's confirmed product to code mapping
    - ExactCodeMatcher: Compares the row code with the catalog supplier code
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from price_import.models.catalog import CatalogItem
from price_import.models.matching import Confidence, MatchMethod, MatchResult
from price_import.models.normalized_row import NormalizedRow
from price_import.models.template import MatchedProductsMap
from price_import.services.normalizer import normalize_code, normalize_text, tokenize

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CandidateEntry:
    """One matchable catalog item (a product or one of its variants).

    Attributes:
        item: Catalog item
        parent_id: Id of the owning product for variants, None for products
        normalized_name: Name after normalize_text()
        tokens: Tokens of the normalized name
    """
    item: CatalogItem
    parent_id: Optional[str]
    normalized_name: str
    tokens: Tuple[str, ...]

    @property
    def is_variant(self) -> bool:
        return self.parent_id is not None


@dataclass
class CandidatePool:
    """Candidate catalog items prepared once for a whole match pass."""

    entries: List[CandidateEntry] = field(default_factory=list)
    _by_id: Dict[str, CandidateEntry] = field(default_factory=dict, repr=False)

    @classmethod
    def from_items(cls, items: Iterable[CatalogItem]) -> "CandidatePool":
        pool = cls()
        for item in items:
            for entry_item in item.iter_with_variants():
                normalized = normalize_text(entry_item.name)
                entry = CandidateEntry(
                    item=entry_item,
                    parent_id=None if entry_item is item else item.id,
                    normalized_name=normalized,
                    tokens=tuple(tokenize(normalized)),
                )
                pool.entries.append(entry)
                pool._by_id.setdefault(entry_item.id, entry)
        return pool

    def get(self, product_id: str) -> Optional[CandidateEntry]:
        return self._by_id.get(product_id)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._by_id

    def __len__(self) -> int:
        return len(self.entries)


class MatcherStrategy(ABC):
    """Abstract base class for product matching strategies.

    All implementations must honor the contract:
        - match() returns None when the strategy has no opinion, so the
          chain moves on to the next strategy
        - Strategies keep no state between calls
        - Higher priority runs first
    """

    priority: int = 0
    method: MatchMethod

    @property
    def name(self) -> str:
        return self.method.value

    @abstractmethod
    def match(
        self,
        row: NormalizedRow,
        candidates: CandidatePool,
        prior_map: MatchedProductsMap,
        supplier_id: Optional[str] = None,
    ) -> Optional[MatchResult]:
        """Match one row against the candidate pool.

        Args:
            row: Normalized price list row
            candidates: Prepared candidate catalog items
            prior_map: Template's confirmed product to supplier-code mapping
            supplier_id: Supplier the price list belongs to

        Returns:
            MatchResult, or None to defer to the next strategy
        """


class PriorMappingMatcher(MatcherStrategy):
    """Returns the product previously confirmed for the row's code.

    Only products still present in the candidate set (directly or as a
    variant) are returned, so a mapping never routes prices to an item
    outside the template's filters.
    """

    priority = 300
    method = MatchMethod.PRIOR_MAPPING

    def match(self, row, candidates, prior_map, supplier_id=None):
        if not row.code or not len(prior_map):
            return None

        mapped = prior_map.find_products(row.code)
        for product_id in mapped:
            if product_id in candidates:
                return MatchResult(
                    product_id=product_id,
                    confidence=Confidence.HIGH,
                    method=self.method,
                    confirmed=True,
                )

        if mapped:
            logger.debug(
                "prior_mapping_outside_candidates",
                supplier_id=supplier_id,
                code=row.code,
                product_ids=mapped,
            )
        return None


class ExactCodeMatcher(MatcherStrategy):
    """Matches the row code against each candidate's supplier code field."""

    priority = 200
    method = MatchMethod.EXACT_CODE

    def match(self, row, candidates, prior_map, supplier_id=None):
        if not row.code:
            return None

        for entry in candidates.entries:
            if normalize_code(entry.item.supplier_code) == row.code:
                diagnostics = {"variant": True, "parent_id": entry.parent_id} if entry.is_variant else {}
                return MatchResult(
                    product_id=entry.item.id,
                    confidence=Confidence.HIGH,
                    method=self.method,
                    diagnostics=diagnostics,
                )
        return None
