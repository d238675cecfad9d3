"""SQLAlchemy-backed template repository."""
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from price_import.db.base import get_session_maker
from price_import.db.models.price_template import PriceTemplateRecord
from price_import.errors.exceptions import PersistenceError
from price_import.models.template import ImportTemplate

logger = structlog.get_logger(__name__)


class SqlAlchemyTemplateRepository:
    """TemplateRepository over an async session factory.

    Each call uses its own session; save() commits the whole template
    in one transaction.
    """

    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_maker = session_maker or get_session_maker()

    async def get(self, template_id: str) -> Optional[ImportTemplate]:
        """Load a template, or None if it does not exist.

        Raises:
            PersistenceError: If the database query fails
        """
        async with self._session_maker() as session:
            try:
                record = await session.get(PriceTemplateRecord, template_id)
            except SQLAlchemyError as e:
                logger.error("template_load_failed", template_id=template_id, error=str(e))
                raise PersistenceError(
                    f"Failed to load template {template_id}: {e}",
                    details={"template_id": template_id},
                ) from e
            return record.to_domain() if record is not None else None

    async def save(self, template: ImportTemplate) -> None:
        """Insert or update a template.

        Raises:
            PersistenceError: If the write fails (the transaction is rolled back)
        """
        async with self._session_maker() as session:
            try:
                record = await session.get(PriceTemplateRecord, template.id)
                if record is None:
                    session.add(PriceTemplateRecord.from_domain(template))
                else:
                    record.update_from_domain(template)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("template_save_failed", template_id=template.id, error=str(e))
                raise PersistenceError(
                    f"Failed to save template {template.id}: {e}",
                    details={"template_id": template.id},
                ) from e
        logger.debug("template_saved", template_id=template.id)
