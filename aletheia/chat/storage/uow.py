"""Transactional scope for ledger writes.

One ``SqlAlchemyUnitOfWork`` owns one session. Work that is not committed
before the block exits is rolled back, whether or not an exception escaped.

Examples
--------
>>> async with SqlAlchemyUnitOfWork(session_factory) as uow:
...     await uow.messages.add(key, message)
...     await uow.commit()
"""

from __future__ import annotations

import typing as typ

from aletheia.logging import get_logger, log_debug

from .repositories import SqlAlchemyConversationRepository, SqlAlchemyMessageRepository

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from types import TracebackType

    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


class SqlAlchemyUnitOfWork:
    """Bind the message and conversation repositories to a single session.

    Attributes
    ----------
    messages : SqlAlchemyMessageRepository
    conversations : SqlAlchemyConversationRepository
    """

    messages: SqlAlchemyMessageRepository
    conversations: SqlAlchemyConversationRepository

    def __init__(self, session_factory: cabc.Callable[[], AsyncSession]) -> None:
        self._session_factory = session_factory
        self._active: AsyncSession | None = None
        self._committed = False

    @property
    def session(self) -> AsyncSession:
        """Return the open session; outside ``async with`` this is an error."""
        if self._active is None:
            msg = "Unit of work used outside its async context."
            raise RuntimeError(msg)
        return self._active

    async def __aenter__(self) -> SqlAlchemyUnitOfWork:
        session = self._session_factory()
        self._active = session
        self._committed = False
        self.messages = SqlAlchemyMessageRepository(session)
        self.conversations = SqlAlchemyConversationRepository(session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        session, self._active = self._active, None
        if session is None:
            return
        try:
            if exc is not None or not self._committed:
                await session.rollback()
        finally:
            await session.close()

    async def commit(self) -> None:
        """Commit pending writes.

        Raises
        ------
        RuntimeError
            If called outside the ``async with`` block.
        """
        await self.session.commit()
        self._committed = True
        log_debug(logger, "ledger.uow.committed")

    async def rollback(self) -> None:
        """Discard pending writes."""
        await self.session.rollback()
        self._committed = False
