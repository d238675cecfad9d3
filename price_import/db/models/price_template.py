"""Import template ORM model."""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Mapped, mapped_column

from price_import.db.base import Base, TimestampMixin
from price_import.models.normalized_row import NormalizedCache
from price_import.models.template import ImportTemplate, MatchedProductsMap, TemplateConfig

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(postgresql.JSONB(astext_type=Text()), "postgresql")


class PriceTemplateRecord(Base, TimestampMixin):
    """Stored import template for one supplier.

    Config, the confirmed match mapping and the normalized-row cache are
    JSON documents; the cache document carries its own source stamp so
    body and stamp are always written together.
    """

    __tablename__ = "price_templates"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    supplier_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    config: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    matched_products: Mapped[Dict[str, str]] = mapped_column(JSONType, nullable=False, default=dict)
    normalized_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    last_import_source_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    last_import_source_updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    applied_by_user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    def to_domain(self) -> ImportTemplate:
        """Build the domain model from the stored columns."""
        cache = None
        if self.normalized_data:
            cache = NormalizedCache.model_validate(self.normalized_data)
        return ImportTemplate(
            id=self.id,
            supplier_id=self.supplier_id,
            name=self.name,
            config=TemplateConfig.model_validate(self.config or {}),
            last_import_source_id=self.last_import_source_id,
            last_import_source_updated_at=self.last_import_source_updated_at,
            normalized_cache=cache,
            matched_products=MatchedProductsMap(self.matched_products or {}),
            applied_at=self.applied_at,
            applied_by_user_id=self.applied_by_user_id,
        )

    def update_from_domain(self, template: ImportTemplate) -> None:
        """Copy every persisted field from the domain model."""
        self.supplier_id = template.supplier_id
        self.name = template.name
        self.config = template.config.model_dump(mode="json")
        self.matched_products = template.matched_products.to_dict()
        self.normalized_data = (
            template.normalized_cache.model_dump(mode="json")
            if template.normalized_cache is not None
            else None
        )
        self.last_import_source_id = template.last_import_source_id
        self.last_import_source_updated_at = template.last_import_source_updated_at
        self.applied_at = template.applied_at
        self.applied_by_user_id = template.applied_by_user_id

    @classmethod
    def from_domain(cls, template: ImportTemplate) -> "PriceTemplateRecord":
        record = cls(id=template.id)
        record.update_from_domain(template)
        return record

    def __repr__(self) -> str:
        return f"<PriceTemplateRecord(id={self.id}, supplier_id={self.supplier_id}, name='{self.name}')>"
