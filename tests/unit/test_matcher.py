"""Unit tests for the matcher strategies and the matcher chain.

Tests cover:
    - Strategy priority: prior mapping > exact code > fuzzy name
    - Prior mappings restricted to the candidate set
    - Variant matching
    - Escalating n-gram search: unique winner, escalation, unbreakable ties
    - Coverage based confidence
    - Batch statistics
"""
import pytest

from price_import.models.catalog import CatalogItem
from price_import.models.matching import Confidence, MatchMethod
from price_import.models.normalized_row import NormalizedRow
from price_import.models.template import MatchedProductsMap
from price_import.services.matching import (
    CandidatePool,
    ExactCodeMatcher,
    FuzzyNameMatcher,
    MatcherChain,
    PriorMappingMatcher,
    build_ngrams,
    create_matcher_chain,
    escalate,
)
from price_import.services.matching.fuzzy import coverage_confidence


def row(code="", name="", number=2):
    return NormalizedRow(row_number=number, code=code, name=name)


@pytest.fixture
def chain():
    return create_matcher_chain()


@pytest.fixture
def bolts():
    return [
        CatalogItem(id="p-m8", name="Steel Hex Bolt M8", supplier_code="ABC-1"),
        CatalogItem(id="p-m10", name="Steel Hex Bolt M10", supplier_code="ABC-2"),
        CatalogItem(id="p-nut", name="Steel Hex Nut M8"),
    ]


class TestMatcherChain:
    """Tests for chain ordering and first-match-wins."""

    def test_default_order(self, chain):
        assert [s.priority for s in chain.strategies] == [300, 200, 100]
        assert [s.name for s in chain.strategies] == ["prior-mapping", "exact-code", "fuzzy-name"]

    def test_requires_strategies(self):
        with pytest.raises(ValueError):
            MatcherChain([])

    def test_exact_code_beats_better_fuzzy_name(self, chain, bolts):
        """A row named exactly like M10 but coded ABC-1 goes to M8."""
        result = chain.match_one(row(code="ABC-1", name="Steel Hex Bolt M10"), bolts)

        assert result.product_id == "p-m8"
        assert result.method == MatchMethod.EXACT_CODE
        assert result.confidence == Confidence.HIGH
        assert result.requires_confirmation is False

    def test_prior_mapping_beats_exact_code(self, chain, bolts):
        prior = MatchedProductsMap({"p-nut": "abc-1"})

        result = chain.match_one(row(code="ABC-1", name="whatever"), bolts, prior)

        assert result.product_id == "p-nut"
        assert result.method == MatchMethod.PRIOR_MAPPING
        assert result.confirmed is True
        assert result.requires_confirmation is False

    def test_prior_mapping_outside_candidates_is_ignored(self, chain, bolts):
        prior = MatchedProductsMap({"p-gone": "ABC-1"})

        result = chain.match_one(row(code="ABC-1", name=""), bolts, prior)

        assert result.product_id == "p-m8"
        assert result.method == MatchMethod.EXACT_CODE

    def test_unknown_code_falls_through_to_fuzzy(self, chain, bolts):
        result = chain.match_one(row(code="ZZZ-9", name="bolt m8 steel hex"), bolts)

        assert result.method == MatchMethod.FUZZY_NAME
        assert result.product_id == "p-m8"

    def test_no_match(self, chain, bolts):
        assert chain.match_one(row(code="ZZZ-9", name="washer"), bolts) is None

    def test_match_all_stats(self, chain, bolts):
        rows = [
            row(code="ABC-2", name="", number=2),
            row(name="hex nut m8 steel", number=3),
            row(code="Q-1", name="rubber gasket", number=4),
        ]

        report = chain.match_all(rows, bolts, supplier_id="supplier-1")

        assert report.stats.total == 3
        assert report.stats.matched == 2
        assert report.stats.unmatched == 1
        assert report.stats.by_method == {"exact-code": 1, "fuzzy-name": 1}
        assert report.stats.by_confidence["high"] == 2
        assert [m.match.product_id for m in report.matched] == ["p-m10", "p-nut"]
        assert report.matched[0].product_name == "Steel Hex Bolt M10"
        assert [r.row_number for r in report.unmatched] == [4]

    def test_match_all_accepts_prepared_pool(self, chain, bolts):
        pool = CandidatePool.from_items(bolts)

        report = chain.match_all([row(code="ABC-1")], pool)

        assert report.matched[0].match.product_id == "p-m8"


class TestVariants:
    """Variants are matchable alongside their parent product."""

    @pytest.fixture
    def shirts(self):
        return [
            CatalogItem(
                id="shirt",
                name="Cotton T-Shirt",
                supplier_code="TS",
                variants=[
                    CatalogItem(id="shirt-red", name="Cotton T-Shirt Red", supplier_code="TS-RED"),
                    CatalogItem(id="shirt-blue", name="Cotton T-Shirt Blue", supplier_code="TS-BLUE"),
                ],
            )
        ]

    def test_pool_flattens_variants(self, shirts):
        pool = CandidatePool.from_items(shirts)

        assert len(pool) == 3
        assert "shirt-blue" in pool
        assert pool.get("shirt-blue").parent_id == "shirt"
        assert pool.get("shirt").is_variant is False

    def test_exact_code_variant(self, shirts):
        result = ExactCodeMatcher().match(
            row(code="TS-RED"), CandidatePool.from_items(shirts), MatchedProductsMap()
        )

        assert result.product_id == "shirt-red"
        assert result.diagnostics == {"variant": True, "parent_id": "shirt"}

    def test_fuzzy_variant(self, shirts):
        result = FuzzyNameMatcher().match(
            row(name="T-shirt cotton, blue"), CandidatePool.from_items(shirts), MatchedProductsMap()
        )

        assert result.product_id == "shirt-blue"
        assert result.diagnostics["variant"] is True
        assert result.diagnostics["parent_id"] == "shirt"

    def test_prior_mapping_to_variant(self, shirts):
        prior = MatchedProductsMap({"shirt-red": "X-77"})

        result = PriorMappingMatcher().match(row(code="X-77"), CandidatePool.from_items(shirts), prior)

        assert result.product_id == "shirt-red"


class TestFuzzyEscalation:
    """Tests for the escalating n-gram search."""

    def test_build_ngrams(self):
        tokens = ["steel", "hex", "bolt", "m8"]
        assert build_ngrams(tokens, 0) == tokens
        assert build_ngrams(tokens, 1) == ["steelhex", "hexbolt", "boltm8"]
        assert build_ngrams(tokens, 2) == ["steelhexbolt", "hexboltm8"]
        assert build_ngrams(tokens, 4) == []

    def test_word_order_does_not_matter_at_level_zero(self, bolts):
        outcome = escalate("bolt m8 steel hex", CandidatePool.from_items(bolts).entries)

        assert outcome.winner.item.id == "p-m8"
        assert outcome.level == 0
        assert outcome.hits == 4
        assert outcome.ambiguous is False

    def test_tie_broken_at_level_one(self):
        items = [
            CatalogItem(id="bs", name="Bolt Steel"),
            CatalogItem(id="sb", name="Steel Bolt"),
        ]

        outcome = escalate("steel bolt zinc", CandidatePool.from_items(items).entries)

        assert outcome.winner.item.id == "sb"
        assert outcome.level == 1
        assert outcome.hits == 1
        assert outcome.ambiguous is False

    def test_unbreakable_tie_keeps_previous_level(self):
        items = [
            CatalogItem(id="hb", name="Hex Bolt"),
            CatalogItem(id="hn", name="Hex Nut"),
        ]

        outcome = escalate("hex", CandidatePool.from_items(items).entries)

        assert outcome.ambiguous is True
        assert outcome.level == 0
        assert outcome.winner.item.id == "hb"
        assert {e.item.id for e in outcome.tied} == {"hb", "hn"}

    def test_tie_between_single_token_names(self):
        items = [CatalogItem(id="a", name="Bolt"), CatalogItem(id="b", name="bolt!")]

        outcome = escalate("bolt", CandidatePool.from_items(items).entries)

        assert outcome.ambiguous is True
        assert outcome.winner.item.id == "a"

    def test_candidates_without_tokens_are_ignored(self):
        items = [CatalogItem(id="empty", name="---"), CatalogItem(id="blank", name="")]

        assert escalate("anything", CandidatePool.from_items(items).entries) is None

    def test_empty_row_name(self, bolts):
        assert escalate("", CandidatePool.from_items(bolts).entries) is None

    def test_ambiguous_match_is_low_confidence(self):
        items = [CatalogItem(id="hb", name="Hex Bolt"), CatalogItem(id="hn", name="Hex Nut")]

        result = FuzzyNameMatcher().match(
            row(name="HEX"), CandidatePool.from_items(items), MatchedProductsMap()
        )

        assert result.ambiguous is True
        assert result.confidence == Confidence.LOW
        assert result.requires_confirmation is True
        assert result.diagnostics["tied_product_ids"] == ["hb", "hn"]


class TestCoverageConfidence:
    """Tests for mapping token coverage to confidence."""

    @pytest.mark.parametrize(
        "hits,level,tokens,expected",
        [
            (4, 0, 4, Confidence.HIGH),
            (1, 1, 2, Confidence.HIGH),
            (2, 0, 4, Confidence.MEDIUM),
            (1, 0, 4, Confidence.LOW),
            (3, 0, 0, Confidence.LOW),
        ],
    )
    def test_levels(self, hits, level, tokens, expected):
        _, confidence = coverage_confidence(hits, level, tokens)
        assert confidence == expected

    def test_coverage_capped(self):
        coverage, _ = coverage_confidence(3, 2, 4)
        assert coverage == 1.0

    def test_partial_name_requires_confirmation(self, bolts):
        result = FuzzyNameMatcher().match(
            row(name="steel bolt"), CandidatePool.from_items(bolts[:1]), MatchedProductsMap()
        )

        assert result.confidence == Confidence.MEDIUM
        assert result.requires_confirmation is True
        assert result.diagnostics["token_coverage"] == 0.5
