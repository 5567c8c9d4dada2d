"""SQLAlchemy ORM models for the history ledger.

Column types are kept portable so the same migrations apply to PostgreSQL
and SQLite.

Examples
--------
Use the base metadata to create the ledger tables:

>>> from sqlalchemy import create_engine
>>> engine = create_engine("sqlite://")
>>> Base.metadata.create_all(engine)
"""

from __future__ import annotations

# SQLAlchemy evaluates annotations at runtime; keep stdlib types imported.
import datetime as dt  # noqa: TC003

import sqlalchemy as sa
from sqlalchemy import orm

IDENTIFIER_LENGTH = 200
ORDERING_KEY_LENGTH = 260


class Base(orm.DeclarativeBase):
    """Base class for ledger SQLAlchemy models.

    Notes
    -----
    Alembic and test scaffolding rely on ``Base.metadata`` when applying
    migrations or creating schema definitions.
    """


class MessageRecord(Base):
    """SQLAlchemy model for persisted messages.

    Attributes
    ----------
    conversation_id : str
        Conversation identifier; first half of the primary key.
    message_id : str
        Message identifier; second half of the primary key.
    ordering_key : str
        ``SEQ#<padded sequence>#MSG#<message id>`` for range reads.
    sequence : int
        Caller-assigned turn sequence.
    role : str
        Speaker role value.
    text : str
        Final message text.
    input_tokens : int | None
        Estimated input tokens.
    output_tokens : int | None
        Estimated output tokens.
    cost_estimate_usd : float | None
        Estimated cost of the generation run.
    model : str | None
        Model that produced the message.
    prompt_source : str | None
        Whether the prompt was prepared or a fallback.
    created_at : datetime.datetime
        Timestamp when the message was finalized.
    """

    __tablename__ = "messages"
    __table_args__ = (
        sa.Index(
            "ix_messages_conversation_ordering", "conversation_id", "ordering_key"
        ),
    )

    conversation_id: orm.Mapped[str] = orm.mapped_column(
        sa.String(IDENTIFIER_LENGTH), primary_key=True
    )
    message_id: orm.Mapped[str] = orm.mapped_column(
        sa.String(IDENTIFIER_LENGTH), primary_key=True
    )
    ordering_key: orm.Mapped[str] = orm.mapped_column(sa.String(ORDERING_KEY_LENGTH))
    sequence: orm.Mapped[int] = orm.mapped_column(sa.Integer)
    role: orm.Mapped[str] = orm.mapped_column(sa.String(16))
    text: orm.Mapped[str] = orm.mapped_column(sa.Text)
    input_tokens: orm.Mapped[int | None] = orm.mapped_column(sa.Integer, nullable=True)
    output_tokens: orm.Mapped[int | None] = orm.mapped_column(sa.Integer, nullable=True)
    cost_estimate_usd: orm.Mapped[float | None] = orm.mapped_column(
        sa.Float, nullable=True
    )
    model: orm.Mapped[str | None] = orm.mapped_column(
        sa.String(IDENTIFIER_LENGTH), nullable=True
    )
    prompt_source: orm.Mapped[str | None] = orm.mapped_column(
        sa.String(16), nullable=True
    )
    created_at: orm.Mapped[dt.datetime] = orm.mapped_column(sa.DateTime(timezone=True))


class ConversationRecord(Base):
    """SQLAlchemy model for per-conversation aggregates."""

    __tablename__ = "conversations"

    conversation_id: orm.Mapped[str] = orm.mapped_column(
        sa.String(IDENTIFIER_LENGTH), primary_key=True
    )
    last_activity_at: orm.Mapped[dt.datetime] = orm.mapped_column(
        sa.DateTime(timezone=True)
    )
    last_sequence: orm.Mapped[int] = orm.mapped_column(sa.Integer)
    total_messages: orm.Mapped[int] = orm.mapped_column(sa.Integer, default=0)
    user_messages: orm.Mapped[int] = orm.mapped_column(sa.Integer, default=0)
    assistant_messages: orm.Mapped[int] = orm.mapped_column(sa.Integer, default=0)
    system_messages: orm.Mapped[int] = orm.mapped_column(sa.Integer, default=0)
