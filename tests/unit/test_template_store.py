"""Unit tests for TemplateStore.

Tests cover:
    - Cache hit on an unchanged source stamp (parse once)
    - Refresh on a new stamp and on force_refresh
    - Missing mapping and empty files
    - Confirmed match recording, all-or-nothing bulk confirmation
"""
from datetime import timedelta

import pytest

from price_import.errors import (
    MalformedSourceError,
    MissingMappingError,
    PersistenceError,
    StaleCacheError,
    TemplateNotFoundError,
    ValidationError,
)
from price_import.models.matching import ConfirmedMatch
from price_import.parsers import AiParser, ExcelParser, ParserRegistry
from price_import.services.template_store import TemplateStore, require_mapping
from tests.helpers import STAMP, CountingCsvParser, csv_bytes, make_template, source_file

PRICE_LINES = [
    "code,name,purchase,retail,stock",
    "ABC-1,Steel Hex Bolt M8,10.00,15.00,5",
    "ABC-2,Steel Hex Nut M8,2.50,4.00,0",
]


@pytest.fixture
def parser():
    return CountingCsvParser()


@pytest.fixture
def store(repository, parser):
    registry = ParserRegistry([parser, ExcelParser(), AiParser()])
    return TemplateStore(repository, registry, timeout=5)


def loader_for(data, counter=None):
    async def load():
        if counter is not None:
            counter.append(1)
        return source_file(data)
    return load


class TestTemplateLookup:
    """Tests for TemplateStore.get and require_mapping."""

    @pytest.mark.asyncio
    async def test_get_missing_template(self, store):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            await store.get("nope")

        assert exc_info.value.details == {"template_id": "nope"}

    @pytest.mark.asyncio
    async def test_find_returns_none(self, store):
        assert await store.find("nope") is None

    def test_require_mapping(self):
        with pytest.raises(MissingMappingError):
            require_mapping(make_template(with_mapping=False))

        assert require_mapping(make_template()).code == "A"


class TestNormalizedRowCache:
    """Tests for get_or_refresh_normalized_rows."""

    @pytest.mark.asyncio
    async def test_second_call_uses_cache(self, store, repository, parser):
        template = repository.put(make_template())
        loads = []

        template, rows = await store.get_or_refresh_normalized_rows(
            template, "file-1", STAMP, loader_for(csv_bytes(PRICE_LINES), loads)
        )
        again, cached = await store.get_or_refresh_normalized_rows(
            template, "file-1", STAMP, loader_for(csv_bytes(PRICE_LINES), loads)
        )

        assert parser.parse_calls == 1
        assert len(loads) == 1
        assert repository.save_count == 1
        assert [r.code for r in rows] == ["ABC-1", "ABC-2"]
        assert cached == rows
        assert again is template

    @pytest.mark.asyncio
    async def test_refresh_persists_cache_and_stamp(self, store, repository):
        template = repository.put(make_template())

        await store.get_or_refresh_normalized_rows(
            template, "file-1", STAMP, loader_for(csv_bytes(PRICE_LINES))
        )

        stored = await repository.get(template.id)
        assert stored.normalized_cache.source_id == "file-1"
        assert stored.normalized_cache.source_updated_at == STAMP
        assert len(stored.normalized_cache.rows) == 2
        assert stored.last_import_source_id == "file-1"
        assert stored.last_import_source_updated_at == STAMP

    @pytest.mark.asyncio
    async def test_new_stamp_reparses(self, store, repository, parser):
        template = repository.put(make_template())
        template, _ = await store.get_or_refresh_normalized_rows(
            template, "file-1", STAMP, loader_for(csv_bytes(PRICE_LINES))
        )

        changed = PRICE_LINES + ["ABC-3,Washer M8,0.50,1.00,9"]
        later = STAMP + timedelta(minutes=5)
        template, rows = await store.get_or_refresh_normalized_rows(
            template, "file-1", later, loader_for(csv_bytes(changed))
        )

        assert parser.parse_calls == 2
        assert len(rows) == 3
        assert template.normalized_cache.source_updated_at == later

    @pytest.mark.asyncio
    async def test_other_source_reparses(self, store, repository, parser):
        template = repository.put(make_template())
        template, _ = await store.get_or_refresh_normalized_rows(
            template, "file-1", STAMP, loader_for(csv_bytes(PRICE_LINES))
        )

        template, _ = await store.get_or_refresh_normalized_rows(
            template, "file-2", STAMP, loader_for(csv_bytes(PRICE_LINES))
        )

        assert parser.parse_calls == 2
        assert template.normalized_cache.source_id == "file-2"

    @pytest.mark.asyncio
    async def test_force_refresh(self, store, repository, parser):
        template = repository.put(make_template())
        template, _ = await store.get_or_refresh_normalized_rows(
            template, "file-1", STAMP, loader_for(csv_bytes(PRICE_LINES))
        )

        await store.get_or_refresh_normalized_rows(
            template, "file-1", STAMP, loader_for(csv_bytes(PRICE_LINES)), force_refresh=True
        )

        assert parser.parse_calls == 2

    @pytest.mark.asyncio
    async def test_missing_mapping(self, store, repository, parser):
        template = repository.put(make_template(with_mapping=False))

        with pytest.raises(MissingMappingError):
            await store.get_or_refresh_normalized_rows(
                template, "file-1", STAMP, loader_for(csv_bytes(PRICE_LINES))
            )

        assert parser.parse_calls == 0

    @pytest.mark.asyncio
    async def test_file_without_rows_is_malformed(self, store, repository):
        template = repository.put(make_template())

        with pytest.raises(MalformedSourceError) as exc_info:
            await store.get_or_refresh_normalized_rows(
                template, "file-1", STAMP, loader_for(csv_bytes(["code,name,purchase,retail,stock"]))
            )

        assert exc_info.value.details["start_row"] == 2
        assert repository.save_count == 0

    def test_check_cache(self):
        template = make_template()
        with pytest.raises(StaleCacheError):
            TemplateStore.check_cache(template, "file-1", STAMP)


class TestConfirmedMatches:
    """Tests for record_confirmed_match and confirm_all."""

    @pytest.mark.asyncio
    async def test_record_confirmed_match(self, store, repository):
        template = repository.put(make_template())

        updated = await store.record_confirmed_match(template, "p-1", " abc-1 ")

        assert updated.matched_products.get("p-1") == "ABC-1"
        assert "p-1" not in template.matched_products
        stored = await repository.get(template.id)
        assert stored.matched_products.find_product("abc-1") == "p-1"

    @pytest.mark.asyncio
    async def test_record_rejects_empty_code(self, store, repository):
        template = repository.put(make_template())

        with pytest.raises(ValidationError):
            await store.record_confirmed_match(template, "p-1", "  ")

        assert repository.save_count == 0

    @pytest.mark.asyncio
    async def test_confirm_all_saves_once(self, store, repository):
        template = repository.put(make_template())
        matches = [
            ConfirmedMatch(product_id="p-1", supplier_code="abc-1"),
            ConfirmedMatch(product_id="p-2", supplier_code="ABC-2"),
        ]

        updated = await store.confirm_all(template, matches)

        assert repository.save_count == 1
        assert updated.matched_products.to_dict() == {"p-1": "ABC-1", "p-2": "ABC-2"}

    @pytest.mark.asyncio
    async def test_confirm_all_rejects_invalid_entries(self, store, repository):
        template = repository.put(make_template())
        matches = [
            ConfirmedMatch(product_id="p-1", supplier_code="abc-1"),
            ConfirmedMatch(product_id="p-2", supplier_code="   "),
        ]

        with pytest.raises(ValidationError) as exc_info:
            await store.confirm_all(template, matches)

        assert len(exc_info.value.details["invalid"]) == 1
        assert repository.save_count == 0
        assert len(template.matched_products) == 0

    @pytest.mark.asyncio
    async def test_confirm_all_failed_save_changes_nothing(self, store, repository):
        template = repository.put(make_template())
        repository.fail_saves = True

        with pytest.raises(PersistenceError):
            await store.confirm_all(
                template, [ConfirmedMatch(product_id="p-1", supplier_code="abc-1")]
            )

        assert len(template.matched_products) == 0
        stored = await repository.get(template.id)
        assert len(stored.matched_products) == 0
