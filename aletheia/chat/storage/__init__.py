"""SQLAlchemy persistence adapters for the history ledger.

This package provides the SQLAlchemy models, repositories, unit-of-work and
``LedgerStore`` implementation used by the ledger. It keeps persistence
logic isolated from the domain layer.

Examples
--------
Back a ledger with a database:

>>> ledger = HistoryLedger(SqlAlchemyLedgerStore(session_factory))
"""

from .migrations import apply_migrations, current_revision, detect_schema_drift
from .models import Base, ConversationRecord, MessageRecord
from .repositories import SqlAlchemyConversationRepository, SqlAlchemyMessageRepository
from .store import SqlAlchemyLedgerStore
from .uow import SqlAlchemyUnitOfWork

__all__ = (
    "Base",
    "ConversationRecord",
    "MessageRecord",
    "SqlAlchemyConversationRepository",
    "SqlAlchemyLedgerStore",
    "SqlAlchemyMessageRepository",
    "SqlAlchemyUnitOfWork",
    "apply_migrations",
    "current_revision",
    "detect_schema_drift",
)
