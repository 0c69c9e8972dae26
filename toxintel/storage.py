"""
SQLite storage for Toxic Intelligence
Conversations, analyzed messages and one summary row per conversation
"""

import json
import sqlite3
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from . import config
from .models import (
    AnalysisResult,
    Conversation,
    ConversationSummary,
    ParsedMessage,
    PersistedMessage,
    SenderType,
)

logger = logging.getLogger(__name__)


class ConversationNotFound(Exception):
    """Raised when a conversation id does not exist."""
    pass


SCHEMA = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    sender_name TEXT NOT NULL,
    sender_type TEXT NOT NULL CHECK (sender_type IN ('SELF', 'OTHER', 'SYSTEM')),
    text TEXT NOT NULL,
    timestamp TEXT,
    toxicity_score REAL,
    sentiment_score REAL,
    flags TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_conversation
    ON messages(conversation_id, created_at, id);

CREATE TABLE IF NOT EXISTS conversation_summary (
    conversation_id TEXT PRIMARY KEY REFERENCES conversations(id) ON DELETE CASCADE,
    avg_toxicity_overall REAL NOT NULL,
    avg_toxicity_self REAL NOT NULL,
    avg_toxicity_other REAL NOT NULL,
    sentiment_overall REAL NOT NULL,
    conflict_days_count INTEGER NOT NULL,
    breakup_risk_score REAL NOT NULL,
    last_calculated_at TEXT
);
"""

MessageRecord = Tuple[ParsedMessage, Optional[AnalysisResult]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class MessageStore:
    """SQLite-backed store for conversations, messages and summaries."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            db_path: SQLite file path (default from config)
            clock: Returns the creation time for new rows (default UTC now)
        """
        self.db_path = Path(db_path or config.DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.clock = clock or utc_now

        self._clock_lock = threading.Lock()
        self._last_created_at: Optional[datetime] = None

        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema."""
        with self._connect() as conn:
            conn.executescript(SCHEMA)
        logger.debug(f"Message store initialized at {self.db_path}")

    def _next_created_at(self) -> datetime:
        """Creation time that never goes backwards within this store."""
        with self._clock_lock:
            now = self.clock()
            if now.tzinfo is None:
                now = now.replace(tzinfo=timezone.utc)
            now = now.astimezone(timezone.utc)
            if self._last_created_at is not None and now < self._last_created_at:
                now = self._last_created_at
            self._last_created_at = now
            return now

    # Conversations

    def create_conversation(self, title: str, description: Optional[str] = None) -> Conversation:
        conversation = Conversation(
            id=str(uuid.uuid4()),
            title=title,
            description=description or None,
            created_at=self._next_created_at(),
        )
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO conversations (id, title, description, created_at) VALUES (?, ?, ?, ?)",
                (conversation.id, conversation.title, conversation.description,
                 conversation.created_at.isoformat(timespec="microseconds")),
            )
        logger.info(f"Created conversation {conversation.id} ({title!r})")
        return conversation

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, title, description, created_at FROM conversations WHERE id = ?",
                (conversation_id,),
            ).fetchone()
        return self._row_to_conversation(row) if row else None

    def list_conversations(self) -> List[Conversation]:
        """All conversations, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, title, description, created_at FROM conversations "
                "ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
        return [self._row_to_conversation(r) for r in rows]

    # Messages

    def insert_messages(self, conversation_id: str, records: Sequence[MessageRecord]) -> int:
        """
        Insert parsed messages with their analysis results in one transaction.

        Args:
            conversation_id: Target conversation
            records: (message, result) pairs; a None result stores null scores

        Returns:
            Number of rows inserted

        Raises:
            ConversationNotFound: Unknown conversation id
        """
        if self.get_conversation(conversation_id) is None:
            raise ConversationNotFound(f"Conversation not found: {conversation_id}")

        created_at = self._next_created_at().isoformat(timespec="microseconds")
        rows = []
        for message, result in records:
            rows.append((
                conversation_id,
                message.sender_name,
                message.sender_type.value,
                message.text,
                None,
                result.toxicity_score if result is not None else None,
                result.sentiment_score if result is not None else None,
                json.dumps(result.flags, ensure_ascii=False) if result is not None else None,
                created_at,
            ))

        with self._connect() as conn:
            conn.executemany(
                "INSERT INTO messages (conversation_id, sender_name, sender_type, text, timestamp, "
                "toxicity_score, sentiment_score, flags, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                rows,
            )

        logger.info(f"Inserted {len(rows)} messages into conversation {conversation_id}")
        return len(rows)

    def list_messages(
        self,
        conversation_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[PersistedMessage]:
        """Messages of a conversation in creation order."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM messages WHERE conversation_id = ? "
                "ORDER BY created_at ASC, id ASC LIMIT ? OFFSET ?",
                (conversation_id, -1 if limit is None else limit, offset),
            ).fetchall()
        return [self._row_to_message(r) for r in rows]

    # Summaries

    def upsert_summary(self, summary: ConversationSummary):
        """Replace the conversation's summary row."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO conversation_summary (
                    conversation_id, avg_toxicity_overall, avg_toxicity_self,
                    avg_toxicity_other, sentiment_overall, conflict_days_count,
                    breakup_risk_score, last_calculated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(conversation_id) DO UPDATE SET
                    avg_toxicity_overall = excluded.avg_toxicity_overall,
                    avg_toxicity_self = excluded.avg_toxicity_self,
                    avg_toxicity_other = excluded.avg_toxicity_other,
                    sentiment_overall = excluded.sentiment_overall,
                    conflict_days_count = excluded.conflict_days_count,
                    breakup_risk_score = excluded.breakup_risk_score,
                    last_calculated_at = excluded.last_calculated_at
                """,
                (
                    summary.conversation_id,
                    summary.avg_toxicity_overall,
                    summary.avg_toxicity_self,
                    summary.avg_toxicity_other,
                    summary.sentiment_overall,
                    summary.conflict_days_count,
                    summary.breakup_risk_score,
                    summary.last_calculated_at.isoformat() if summary.last_calculated_at else None,
                ),
            )
        logger.debug(f"Upserted summary for conversation {summary.conversation_id}")

    def get_summary(self, conversation_id: str) -> Optional[ConversationSummary]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM conversation_summary WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()

        if row is None:
            return None

        return ConversationSummary(
            conversation_id=row["conversation_id"],
            avg_toxicity_overall=row["avg_toxicity_overall"],
            avg_toxicity_self=row["avg_toxicity_self"],
            avg_toxicity_other=row["avg_toxicity_other"],
            sentiment_overall=row["sentiment_overall"],
            conflict_days_count=row["conflict_days_count"],
            breakup_risk_score=row["breakup_risk_score"],
            last_calculated_at=_parse_dt(row["last_calculated_at"]),
        )

    def ping(self) -> bool:
        """Check that the database answers."""
        with self._connect() as conn:
            conn.execute("SELECT 1")
        return True

    @staticmethod
    def _row_to_conversation(row: sqlite3.Row) -> Conversation:
        return Conversation(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> PersistedMessage:
        return PersistedMessage(
            id=row["id"],
            conversation_id=row["conversation_id"],
            sender_name=row["sender_name"],
            sender_type=SenderType(row["sender_type"]),
            text=row["text"],
            timestamp=_parse_dt(row["timestamp"]),
            toxicity_score=row["toxicity_score"],
            sentiment_score=row["sentiment_score"],
            flags=json.loads(row["flags"]) if row["flags"] is not None else None,
            created_at=datetime.fromisoformat(row["created_at"]),
        )
