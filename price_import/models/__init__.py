"""Pydantic models for the price import pipeline."""
from price_import.models.normalized_row import NormalizedRow, NormalizedCache, PreviewResult
from price_import.models.catalog import (
    CatalogItem,
    StoredPrices,
    PriceUpdate,
    FileInfo,
    SourceFile,
)
from price_import.models.pricing import (
    PriceChange,
    RecalculateScope,
    ComputedPrices,
    RowOutcome,
    ApplyStats,
    RecalculateStats,
    ConfirmStats,
)
from price_import.models.matching import (
    Confidence,
    MatchMethod,
    MatchResult,
    MatchedRow,
    MatchStats,
    MatchReport,
    MatchPreview,
    ConfirmedMatch,
)
from price_import.models.template import (
    PriceMode,
    PriceRole,
    ModifierType,
    AvailabilityAction,
    PriceModifier,
    PriceRules,
    ColumnMapping,
    CatalogFilters,
    StockRules,
    TemplateConfig,
    MatchedProductsMap,
    ImportTemplate,
)

__all__ = [
    "NormalizedRow",
    "NormalizedCache",
    "PreviewResult",
    "CatalogItem",
    "StoredPrices",
    "PriceUpdate",
    "FileInfo",
    "SourceFile",
    "PriceChange",
    "RecalculateScope",
    "ComputedPrices",
    "RowOutcome",
    "ApplyStats",
    "RecalculateStats",
    "ConfirmStats",
    "Confidence",
    "MatchMethod",
    "MatchResult",
    "MatchedRow",
    "MatchStats",
    "MatchReport",
    "MatchPreview",
    "ConfirmedMatch",
    "PriceMode",
    "PriceRole",
    "ModifierType",
    "AvailabilityAction",
    "PriceModifier",
    "PriceRules",
    "ColumnMapping",
    "CatalogFilters",
    "StockRules",
    "TemplateConfig",
    "MatchedProductsMap",
    "ImportTemplate",
]
