"""Database models for template persistence."""
from price_import.db.models.price_template import PriceTemplateRecord

__all__ = ["PriceTemplateRecord"]
