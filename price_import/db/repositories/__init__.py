"""Repositories backed by the database."""
from price_import.db.repositories.template_repo import SqlAlchemyTemplateRepository

__all__ = ["SqlAlchemyTemplateRepository"]
