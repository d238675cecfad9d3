"""Price update orchestrator.

Runs the import workflow for one supplier template: preview a file, parse
and cache its rows, match them to catalog items, record confirmed
matches, apply prices and re-derive prices from stored raw values.

All collaborator calls and parses are bounded by a timeout. Nothing here
retries; retries belong to the caller.
"""
import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog

from price_import.config import settings
from price_import.errors.exceptions import (
    MissingSourceError,
    NoCandidatesError,
    PartialWriteFailureError,
)
from price_import.models.catalog import CatalogItem, FileInfo, PriceUpdate, SourceFile, StoredPrices
from price_import.models.matching import ConfirmedMatch, MatchPreview
from price_import.models.normalized_row import NormalizedRow, PreviewResult
from price_import.models.pricing import (
    ApplyStats,
    ComputedPrices,
    ConfirmStats,
    RecalculateScope,
    RecalculateStats,
    RowOutcome,
)
from price_import.models.template import (
    AvailabilityAction,
    ColumnMapping,
    ImportTemplate,
    PriceRules,
    StockRules,
)
from price_import.parsers.parser_registry import ParserRegistry, create_default_registry
from price_import.services.collaborators import (
    CatalogQuery,
    CatalogWriter,
    FileStorage,
    TemplateRepository,
)
from price_import.services.matching.chain import MatcherChain, create_matcher_chain
from price_import.services.matching.matcher import CandidatePool
from price_import.services.normalizer import normalize_code, normalize_price
from price_import.services.price_update.locks import TemplateLockRegistry
from price_import.services.pricing.calculator import compute_from_raw, compute_prices, price_change, round_price
from price_import.services.template_store import TemplateStore
from price_import.services.timeouts import with_timeout

logger = structlog.get_logger(__name__)


def stock_from_availability(availability: Optional[str]) -> int:
    """Read a stock count from the price list availability cell (0 if unreadable)."""
    value = normalize_price(availability)
    if value is None:
        return 0
    return max(0, int(value))


def build_price_update(
    row: NormalizedRow,
    rules: PriceRules,
    stock_rules: StockRules,
    template_id: str,
    currency: str,
) -> PriceUpdate:
    """Build the catalog write for one applied row."""
    prices = compute_prices(row, rules)

    stock: Optional[int] = None
    if stock_rules.availability_action == AvailabilityAction.SET_FROM_PRICE:
        stock = stock_from_availability(row.availability)
    elif stock_rules.availability_action == AvailabilityAction.SET_FIXED:
        stock = stock_rules.fixed_stock

    return PriceUpdate(
        purchase=prices.purchase,
        retail=prices.retail,
        currency=currency,
        stock=stock,
        supplier_code=row.code,
        stored=StoredPrices(
            template_id=template_id,
            raw_price1=row.price1,
            raw_price2=row.price2,
            purchase=prices.purchase,
            retail=prices.retail,
            currency=currency,
        ),
    )


class PriceUpdateService:
    """Async orchestrator for supplier price imports.

    Attributes:
        store: Template store (normalized-row cache, match mapping)
        parsers: Parser registry
        chain: Matcher chain
        locks: Per-template apply locks
    """

    def __init__(
        self,
        repository: TemplateRepository,
        storage: FileStorage,
        catalog: CatalogQuery,
        writer: CatalogWriter,
        parsers: Optional[ParserRegistry] = None,
        chain: Optional[MatcherChain] = None,
        locks: Optional[TemplateLockRegistry] = None,
        timeout: Optional[float] = None,
    ):
        self.parsers = parsers or create_default_registry()
        self.chain = chain or create_matcher_chain()
        self.locks = locks or TemplateLockRegistry()
        self.store = TemplateStore(repository, self.parsers, timeout=timeout)
        self._storage = storage
        self._catalog = catalog
        self._writer = writer
        self._timeout = timeout

    # ---------------------------------------------------------------- sources

    async def _source_info(self, source_id: str) -> FileInfo:
        info = await with_timeout(
            self._storage.get_info(source_id), "file_info", self._timeout, source_id=source_id
        )
        if info is None:
            raise MissingSourceError(
                f"Source file {source_id} not found",
                details={"source_id": source_id},
            )
        return info

    async def _load_source(self, info: FileInfo) -> SourceFile:
        data = await with_timeout(
            self._storage.read_bytes(info.file_id), "file_read", self._timeout, source_id=info.file_id
        )
        if data is None:
            raise MissingSourceError(
                f"Source file {info.file_id} has no content",
                details={"source_id": info.file_id},
            )
        return SourceFile.from_info(info, data)

    @staticmethod
    def _resolve_source_id(template: ImportTemplate, source_id: Optional[str]) -> str:
        resolved = source_id or template.config.selected_source_id or template.last_import_source_id
        if not resolved:
            raise MissingSourceError(
                f"No source file selected for template {template.id}",
                details={"template_id": template.id},
            )
        return resolved

    async def _rows_for(
        self,
        template: ImportTemplate,
        source_id: Optional[str],
        force_refresh: bool = False,
    ) -> Tuple[ImportTemplate, str, List[NormalizedRow]]:
        resolved = self._resolve_source_id(template, source_id)
        info = await self._source_info(resolved)

        async def load() -> SourceFile:
            return await self._load_source(info)

        template, rows = await self.store.get_or_refresh_normalized_rows(
            template, resolved, info.updated_at, load, force_refresh=force_refresh
        )
        return template, resolved, rows

    async def _candidates(self, template: ImportTemplate) -> List[CatalogItem]:
        candidates = await with_timeout(
            self._catalog.find_candidates(template.config.filters),
            "find_candidates",
            self._timeout,
            template_id=template.id,
        )
        if not candidates:
            raise NoCandidatesError(
                f"Catalog filters of template {template.id} match no items",
                details={
                    "template_id": template.id,
                    "filters": template.config.filters.model_dump(mode="json"),
                },
            )
        return candidates

    # ------------------------------------------------------------- operations

    async def preview_file(
        self,
        source_id: str,
        row_limit: Optional[int] = None,
        mapping: Optional[ColumnMapping] = None,
    ) -> PreviewResult:
        """Show the first rows of a file and suggest the first data row.

        Raises:
            MissingSourceError: If the file does not exist
            UnsupportedFormatError: If no parser supports the file
            MalformedSourceError: If the file cannot be read
        """
        source = await self._load_source(await self._source_info(source_id))
        return await with_timeout(
            self.parsers.preview(source, row_limit or settings.preview_rows, mapping),
            "preview",
            self._timeout,
            source_id=source_id,
        )

    async def parse_and_normalize(
        self,
        template_id: str,
        source_id: Optional[str] = None,
        force_refresh: bool = False,
    ) -> List[NormalizedRow]:
        """Return the template's normalized rows, parsing only if the cache is stale.

        Args:
            template_id: Template to parse for
            source_id: Source file; defaults to the template's selected file
            force_refresh: Re-parse even when the cache is fresh

        Raises:
            TemplateNotFoundError, MissingSourceError, MissingMappingError,
            UnsupportedFormatError, MalformedSourceError, OperationTimeoutError
        """
        template = await self.store.get(template_id)
        _, _, rows = await self._rows_for(template, source_id, force_refresh)
        return rows

    async def match_preview(self, template_id: str) -> MatchPreview:
        """Match the template's rows against its candidate items.

        Read-only apart from refreshing a stale row cache. Matched rows are
        enriched with computed prices and the change against current ones.

        Raises:
            NoCandidatesError: If the catalog filters match no items
        """
        template = await self.store.get(template_id)
        log = logger.bind(template_id=template_id, supplier_id=template.supplier_id)

        template, source_id, rows = await self._rows_for(template, None)
        candidates = await self._candidates(template)
        pool = CandidatePool.from_items(candidates)

        report = self.chain.match_all(rows, pool, template.matched_products, template.supplier_id)

        rules = template.config.price_rules
        for matched in report.matched:
            entry = pool.get(matched.match.product_id)
            new_prices = compute_prices(matched.row, rules)
            matched.new_prices = new_prices
            if entry is None:
                continue
            current = ComputedPrices(
                purchase=entry.item.purchase_price,
                retail=entry.item.retail_price,
            )
            matched.current_prices = current
            for role in ("purchase", "retail"):
                change = price_change(getattr(current, role), getattr(new_prices, role))
                if change is not None:
                    matched.price_changes[role] = change

        log.info(
            "match_preview_built",
            rows=len(rows),
            candidates=len(candidates),
            matched=report.stats.matched,
            unmatched=report.stats.unmatched,
        )
        return MatchPreview(
            matched=report.matched,
            unmatched=report.unmatched,
            stats=report.stats,
            template_id=template_id,
            source_id=source_id,
            candidate_count=len(candidates),
        )

    async def update_match(self, template_id: str, row_code: str, product_id: str) -> ImportTemplate:
        """Manually pair a row code with a catalog item and remember it."""
        template = await self.store.get(template_id)
        return await self.store.record_confirmed_match(template, product_id, row_code)

    async def confirm_all_matches(
        self,
        template_id: str,
        matches: Sequence[ConfirmedMatch],
    ) -> ConfirmStats:
        """Persist a caller-approved set of matches without writing prices."""
        template = await self.store.get(template_id)
        updated = await self.store.confirm_all(template, matches)
        return ConfirmStats(confirmed=len(matches), total_mappings=len(updated.matched_products))

    async def apply_prices(
        self,
        template_id: str,
        confirmed_matches: Sequence[ConfirmedMatch],
        acting_user_id: str,
    ) -> ApplyStats:
        """Write prices for confirmed matches.

        Policy is skip-and-continue: a match whose code is not among the
        cached rows, or whose catalog item no longer exists, is skipped and
        the batch still completes (applied_at advances).

        Rows come from the template cache, re-parsed first if the source
        file changed since it was cached. Mappings are merged into the
        template as stored when the writes finish.

        If any catalog write fails, mappings are saved only for rows that
        were written, applied_at is left unchanged and
        PartialWriteFailureError reports exactly which rows succeeded.

        Raises:
            ApplyConflictError: If an apply is already running for the template
            PartialWriteFailureError: If one or more catalog writes failed
        """
        async with self.locks.acquire(template_id):
            return await self._apply_locked(template_id, confirmed_matches, acting_user_id)

    def is_applying(self, template_id: str) -> bool:
        """True while an apply holds the template's lock.

        Catalog write listeners use this to ignore writes made by the apply.
        """
        return self.locks.is_locked(template_id)

    async def _apply_locked(
        self,
        template_id: str,
        confirmed_matches: Sequence[ConfirmedMatch],
        acting_user_id: str,
    ) -> ApplyStats:
        template = await self.store.get(template_id)
        log = logger.bind(template_id=template_id, user_id=acting_user_id)

        cache = template.normalized_cache
        if cache is None:
            raise MissingSourceError(
                f"Template {template_id} has no parsed rows to apply",
                details={"template_id": template_id},
            )

        # The file may have changed since the preview; never apply stale rows
        template, _, rows = await self._rows_for(template, cache.source_id)

        rows_by_code: Dict[str, NormalizedRow] = {}
        for row in rows:
            if row.code:
                rows_by_code.setdefault(row.code, row)

        rules = template.config.price_rules
        stock_rules = template.config.stock
        currency = rules.currency or settings.default_currency
        stats = ApplyStats(attempted=len(confirmed_matches))
        semaphore = asyncio.Semaphore(settings.apply_concurrency)

        async def apply_one(match: ConfirmedMatch) -> Tuple[str, Optional[str]]:
            row = rows_by_code.get(normalize_code(match.supplier_code))
            if row is None:
                return "skipped", "code_not_in_price_list"
            async with semaphore:
                item = await with_timeout(
                    self._catalog.find_by_id(match.product_id),
                    "find_by_id",
                    self._timeout,
                    product_id=match.product_id,
                )
                if item is None:
                    return "skipped", "catalog_item_missing"
                update = build_price_update(row, rules, stock_rules, template_id, currency)
                await with_timeout(
                    self._writer.update_prices(match.product_id, update),
                    "update_prices",
                    self._timeout,
                    product_id=match.product_id,
                )
            return "updated", None

        results = await asyncio.gather(
            *(apply_one(match) for match in confirmed_matches),
            return_exceptions=True,
        )

        written: List[ConfirmedMatch] = []
        for match, result in zip(confirmed_matches, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                stats.failed += 1
                stats.failed_rows.append(
                    RowOutcome(product_id=match.product_id, supplier_code=match.supplier_code, reason=str(result))
                )
                log.error(
                    "price_write_failed",
                    product_id=match.product_id,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                continue
            outcome, reason = result
            if outcome == "skipped":
                stats.skipped += 1
                stats.skipped_rows.append(
                    RowOutcome(product_id=match.product_id, supplier_code=match.supplier_code, reason=reason)
                )
                log.info("apply_row_skipped", product_id=match.product_id, reason=reason)
                continue
            stats.updated += 1
            stats.updated_ids.append(match.product_id)
            written.append(match)

        if not stats.failed and stock_rules.zero_stock_for_missing:
            await self._zero_stock_for_missing(template, confirmed_matches, stats, semaphore)

        # Re-read so mappings saved while the writes ran are kept
        updated = await self.store.get(template_id)
        for match in written:
            if match.persist_mapping:
                updated.matched_products.upsert(match.product_id, match.supplier_code)
                stats.mappings_saved += 1

        if stats.failed:
            await self.store.save(updated)
            log.error(
                "apply_partially_failed",
                attempted=stats.attempted,
                updated=stats.updated,
                skipped=stats.skipped,
                failed=stats.failed,
            )
            raise PartialWriteFailureError(
                f"{stats.failed} of {stats.attempted} price writes failed",
                stats=stats,
                details={"template_id": template_id},
            )

        updated.applied_at = datetime.now(timezone.utc)
        updated.applied_by_user_id = acting_user_id
        await self.store.save(updated)
        stats.applied_at = updated.applied_at

        log.info(
            "prices_applied",
            attempted=stats.attempted,
            updated=stats.updated,
            skipped=stats.skipped,
            mappings_saved=stats.mappings_saved,
            zero_stock_set=stats.zero_stock_set,
            zero_stock_failed=stats.zero_stock_failed,
        )
        return stats

    async def _zero_stock_for_missing(
        self,
        template: ImportTemplate,
        confirmed_matches: Sequence[ConfirmedMatch],
        stats: ApplyStats,
        semaphore: asyncio.Semaphore,
    ) -> None:
        """Set stock 0 on filtered catalog items that are not in this batch."""
        in_batch = {match.product_id for match in confirmed_matches}
        candidates = await with_timeout(
            self._catalog.find_candidates(template.config.filters),
            "find_candidates",
            self._timeout,
            template_id=template.id,
        )
        missing = [
            item.id
            for candidate in candidates
            for item in candidate.iter_with_variants()
            if item.id not in in_batch
        ]

        async def zero(product_id: str) -> None:
            async with semaphore:
                await with_timeout(
                    self._writer.update_prices(product_id, PriceUpdate(stock=0)),
                    "update_prices",
                    self._timeout,
                    product_id=product_id,
                )

        results = await asyncio.gather(*(zero(pid) for pid in missing), return_exceptions=True)
        for product_id, result in zip(missing, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                stats.zero_stock_failed += 1
                logger.warning("zero_stock_write_failed", product_id=product_id, error=str(result))
                continue
            stats.zero_stock_set += 1

    async def recalculate_prices(
        self,
        scope: RecalculateScope = RecalculateScope.ALL,
        limit: Optional[int] = None,
    ) -> RecalculateStats:
        """Re-derive catalog prices from stored raw supplier values.

        Uses each item's owning template's current price rules and converts
        into the base currency with the catalog's currency factors. Template
        match mappings are never touched.

        Args:
            scope: purchase, retail or all
            limit: Maximum number of items to process
        """
        stats = RecalculateStats()
        items = await with_timeout(
            self._catalog.find_with_stored_prices(limit), "find_with_stored_prices", self._timeout
        )
        if not items:
            return stats

        factors = await with_timeout(
            self._catalog.get_currency_factors(), "get_currency_factors", self._timeout
        )
        templates: Dict[str, Optional[ImportTemplate]] = {}

        for item in items:
            stored = item.stored_prices
            if stored is None or (stored.raw_price1 is None and stored.raw_price2 is None):
                stats.skipped += 1
                continue
            if stored.template_id not in templates:
                templates[stored.template_id] = await self.store.find(stored.template_id)
            template = templates[stored.template_id]
            if template is None:
                logger.warning(
                    "recalculate_template_missing",
                    product_id=item.id,
                    template_id=stored.template_id,
                )
                stats.skipped += 1
                continue

            stats.processed += 1
            update = self._recalculated_update(stored, template.config.price_rules, factors, scope)
            if update is None:
                stats.skipped += 1
                continue

            try:
                await with_timeout(
                    self._writer.update_prices(item.id, update),
                    "update_prices",
                    self._timeout,
                    product_id=item.id,
                )
            except Exception as e:
                stats.errors += 1
                logger.error("recalculate_write_failed", product_id=item.id, error=str(e))
                continue
            stats.updated += 1

        logger.info("prices_recalculated", scope=scope.value, **stats.model_dump())
        return stats

    @staticmethod
    def _recalculated_update(
        stored: StoredPrices,
        rules: PriceRules,
        factors: Dict[str, Decimal],
        scope: RecalculateScope,
    ) -> Optional[PriceUpdate]:
        prices = compute_from_raw(stored.raw_price1, stored.raw_price2, rules)
        currency = rules.currency or stored.currency
        factor = Decimal(str(factors.get(currency, 1))) or Decimal("1")

        values: Dict[str, Any] = {}
        if scope in (RecalculateScope.PURCHASE, RecalculateScope.ALL) and prices.purchase is not None:
            values["purchase"] = round_price(prices.purchase / factor)
        if scope in (RecalculateScope.RETAIL, RecalculateScope.ALL) and prices.retail is not None:
            values["retail"] = round_price(prices.retail / factor)
        if not values:
            return None

        return PriceUpdate(
            **values,
            stored=stored.model_copy(
                update={"purchase": prices.purchase, "retail": prices.retail, "currency": currency}
            ),
        )

    def list_supported_formats(self) -> List[Dict[str, Any]]:
        """Registered parsers with their extensions."""
        return self.parsers.parser_info()
