from typing import AsyncGenerator, Optional

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, relationship

from textstream.config import settings
from textstream.utils.time import utcnow

DATABASE_URL = settings.get_database_url()

# Create async engine
engine = create_async_engine(DATABASE_URL, echo=False)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Stream(Base):
    """One logical generation session. Status values come from StreamStatus."""

    __tablename__ = "streams"

    id = Column(String(64), primary_key=True)
    status = Column(String(16), nullable=False, default="pending", index=True)
    drive_token = Column(String(64), nullable=True)  # Fencing token of the active driver
    created_at = Column(DateTime, default=utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)  # Set when a driver attaches
    finished_at = Column(DateTime, nullable=True)  # Set on the terminal transition

    # Relationship to chunks
    chunks = relationship(
        "Chunk",
        back_populates="stream",
        cascade="all, delete-orphan",
        order_by="Chunk.sequence",
    )

    def __repr__(self):
        return f"<Stream(id='{self.id}', status='{self.status}')>"


class Chunk(Base):
    """Immutable, ordered fragment of a stream's text. Append-only."""

    __tablename__ = "chunks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    stream_id = Column(
        String(64), ForeignKey("streams.id", ondelete="CASCADE"), nullable=False
    )
    sequence = Column(Integer, nullable=False)  # 0, 1, 2, ... per stream
    text = Column(Text, nullable=False, default="")
    reasoning = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # A sequence number can only be used once per stream
    __table_args__ = (
        Index("ix_chunks_stream_sequence", "stream_id", "sequence", unique=True),
    )

    stream = relationship("Stream", back_populates="chunks")

    def __repr__(self):
        return f"<Chunk(stream_id='{self.stream_id}', sequence={self.sequence})>"


class Message(Base):
    """A user prompt in the chat app and the stream carrying its response."""

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    prompt = Column(Text, nullable=False)
    response_stream_id = Column(
        String(64), ForeignKey("streams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Message(id={self.id}, stream='{self.response_stream_id}')>"


async def init_db(bind: Optional[AsyncEngine] = None):
    """Initialize the database, creating all tables if they don't exist."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()
