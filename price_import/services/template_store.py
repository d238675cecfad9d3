"""Template store: normalized-row cache and the persistent match mapping.

This is the only place a template's cache is refreshed, and the only
place the product to supplier-code mapping is written.
"""
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import structlog

from price_import.errors.exceptions import (
    MalformedSourceError,
    MissingMappingError,
    StaleCacheError,
    TemplateNotFoundError,
    ValidationError,
)
from price_import.models.catalog import SourceFile
from price_import.models.matching import ConfirmedMatch
from price_import.models.normalized_row import NormalizedCache, NormalizedRow
from price_import.models.template import ColumnMapping, ImportTemplate
from price_import.parsers.parser_registry import ParserRegistry
from price_import.services.collaborators import TemplateRepository
from price_import.services.normalizer import normalize_code
from price_import.services.timeouts import with_timeout

logger = structlog.get_logger(__name__)

SourceLoader = Callable[[], Awaitable[SourceFile]]


def require_mapping(template: ImportTemplate) -> ColumnMapping:
    """Return the template's column mapping.

    Raises:
        MissingMappingError: If no usable mapping is configured
    """
    mapping = template.config.column_mapping
    if mapping is None or not mapping.is_configured:
        raise MissingMappingError(
            f"Template {template.id} has no column mapping configured",
            details={"template_id": template.id},
        )
    return mapping


class TemplateStore:
    """Reads and writes templates through the repository."""

    def __init__(
        self,
        repository: TemplateRepository,
        parsers: ParserRegistry,
        timeout: Optional[float] = None,
    ):
        self._repository = repository
        self._parsers = parsers
        self._timeout = timeout

    async def find(self, template_id: str) -> Optional[ImportTemplate]:
        return await with_timeout(
            self._repository.get(template_id),
            "template_load",
            self._timeout,
            template_id=template_id,
        )

    async def get(self, template_id: str) -> ImportTemplate:
        """Load a template.

        Raises:
            TemplateNotFoundError: If the template does not exist
        """
        template = await self.find(template_id)
        if template is None:
            raise TemplateNotFoundError(
                f"Template {template_id} not found",
                details={"template_id": template_id},
            )
        return template

    async def save(self, template: ImportTemplate) -> None:
        await with_timeout(
            self._repository.save(template),
            "template_save",
            self._timeout,
            template_id=template.id,
        )

    @staticmethod
    def check_cache(template: ImportTemplate, source_id: str, source_updated_at) -> NormalizedCache:
        """Return the cache if it matches the source stamp.

        Raises:
            StaleCacheError: If there is no cache or it belongs to another stamp
        """
        cache = template.normalized_cache
        if cache is None:
            raise StaleCacheError("No normalized cache", details={"template_id": template.id})
        if not cache.is_fresh_for(source_id, source_updated_at):
            raise StaleCacheError(
                "Normalized cache is stale",
                details={
                    "template_id": template.id,
                    "cached_source_id": cache.source_id,
                    "cached_updated_at": cache.source_updated_at.isoformat(),
                },
            )
        return cache

    async def get_or_refresh_normalized_rows(
        self,
        template: ImportTemplate,
        source_id: str,
        source_updated_at,
        load_source: SourceLoader,
        force_refresh: bool = False,
    ) -> Tuple[ImportTemplate, List[NormalizedRow]]:
        """Return normalized rows for the source, re-parsing only when needed.

        Calling this twice with the same source stamp parses once. The
        fresh rows and their stamp are stored as one value and persisted
        with a single save.

        Args:
            template: Template owning the cache
            source_id: Id of the source file
            source_updated_at: Current modification stamp of the source file
            load_source: Loads the file bytes; only awaited on a cache miss
            force_refresh: Re-parse even if the cache is fresh

        Returns:
            (template, rows): the possibly updated template and its rows

        Raises:
            MissingMappingError: If the template has no column mapping
            MalformedSourceError: If the file is unreadable or yields no rows
        """
        mapping = require_mapping(template)
        log = logger.bind(template_id=template.id, source_id=source_id)

        if not force_refresh:
            try:
                cache = self.check_cache(template, source_id, source_updated_at)
                log.debug("normalized_cache_hit", rows=len(cache.rows))
                return template, list(cache.rows)
            except StaleCacheError as e:
                log.info("normalized_cache_refresh", reason=e.message)

        source = await load_source()
        rows = await with_timeout(
            self._parsers.parse(source, mapping),
            "parse",
            self._timeout,
            template_id=template.id,
            source_id=source_id,
        )
        if not rows:
            raise MalformedSourceError(
                f"File '{source.name}' produced no data rows",
                details={"template_id": template.id, "source_id": source_id, "start_row": mapping.start_row},
            )

        cache = NormalizedCache(
            source_id=source_id,
            source_updated_at=source_updated_at,
            rows=tuple(rows),
        )
        refreshed = template.model_copy(
            update={
                "normalized_cache": cache,
                "last_import_source_id": source_id,
                "last_import_source_updated_at": source_updated_at,
            }
        )
        await self.save(refreshed)
        log.info("normalized_cache_stored", rows=len(rows))
        return refreshed, rows

    async def record_confirmed_match(
        self,
        template: ImportTemplate,
        product_id: str,
        supplier_code: str,
    ) -> ImportTemplate:
        """Upsert one product to supplier-code pairing and persist it."""
        if not product_id or not normalize_code(supplier_code):
            raise ValidationError(
                "Both product_id and supplier_code are required",
                details={"product_id": product_id, "supplier_code": supplier_code},
            )
        updated = template.model_copy(deep=True)
        updated.matched_products.upsert(product_id, supplier_code)
        await self.save(updated)
        logger.info(
            "confirmed_match_recorded",
            template_id=template.id,
            product_id=product_id,
            supplier_code=normalize_code(supplier_code),
        )
        return updated

    async def confirm_all(
        self,
        template: ImportTemplate,
        matches: Sequence[ConfirmedMatch],
    ) -> ImportTemplate:
        """Record many pairings at once, all or nothing.

        Every entry is validated before anything changes. The mapping is
        built on a copy and saved once; if validation or the save fails,
        neither the passed template nor the stored record changes.
        """
        invalid = [
            m.model_dump() for m in matches
            if not m.product_id.strip() or not normalize_code(m.supplier_code)
        ]
        if invalid:
            raise ValidationError(
                f"{len(invalid)} confirmed matches are invalid",
                details={"template_id": template.id, "invalid": invalid},
            )

        updated = template.model_copy(deep=True)
        for match in matches:
            updated.matched_products.upsert(match.product_id, match.supplier_code)
        await self.save(updated)
        logger.info(
            "confirmed_matches_recorded",
            template_id=template.id,
            confirmed=len(matches),
            total_mappings=len(updated.matched_products),
        )
        return updated
