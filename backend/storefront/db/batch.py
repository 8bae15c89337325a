"""All-or-nothing execution of staged write statements."""

import logging
from collections.abc import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Executable

from storefront.core.errors import StorageError

logger = logging.getLogger(__name__)


async def commit_batch(db: AsyncSession, statements: Sequence[Executable], failure_message: str) -> None:
    """Execute ``statements`` in order inside the session transaction and commit once.

    Any failure rolls the whole batch back and surfaces as a StorageError carrying only
    ``failure_message``.
    """
    try:
        for statement in statements:
            await db.execute(statement)
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Batch of %d statements failed and was rolled back", len(statements))
        await db.rollback()
        raise StorageError(failure_message)
