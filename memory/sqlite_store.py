"""SQLite-based memory store for conversation persistence."""

import sqlite3
import json
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional, List, Tuple, Dict

from schemas.context import ConversationKey
from .models import Turn, ConversationSummary

logger = logging.getLogger(__name__)


class SQLiteMemoryStore:
    """
    SQLite-based persistent memory store.

    Holds what must survive idle eviction and restarts: the rolling summary,
    customer preferences, and an append-only log of turns for history views.
    A fresh connection is opened per call, so the store is safe to share
    between worker threads.
    """

    def __init__(self, db_path: str = "data/conversations.db"):
        """
        Initialize SQLite memory store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory."""
        conn = sqlite3.connect(self.db_path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema."""
        conn = self._get_connection()
        cursor = conn.cursor()

        # Conversations table: summary and preferences per key
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                tenant_id TEXT NOT NULL,
                conversation_id TEXT NOT NULL,
                summary TEXT,
                preferences TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (tenant_id, conversation_id)
            )
        """)

        # Turns table
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS turns (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                tenant_id TEXT NOT NULL,
                conversation_id TEXT NOT NULL,
                turn_id TEXT NOT NULL,
                role TEXT NOT NULL CHECK(role IN ('customer', 'assistant')),
                text TEXT NOT NULL,
                timestamp TIMESTAMP NOT NULL,
                intent TEXT,
                emotion TEXT,
                confidence REAL,
                UNIQUE (tenant_id, conversation_id, turn_id)
            )
        """)

        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_turns_conversation ON turns(tenant_id, conversation_id)"
        )

        conn.commit()
        conn.close()
        logger.info(f"Database initialized at {self.db_path}")

    def save_context(
        self,
        key: ConversationKey,
        summary: ConversationSummary,
        preferences: Dict[str, str]
    ):
        """
        Upsert the summary and preferences of a conversation.

        Args:
            key: Conversation key
            summary: Current rolling summary
            preferences: Customer preferences
        """
        conn = self._get_connection()
        now = datetime.now()
        try:
            conn.execute(
                """
                INSERT INTO conversations (tenant_id, conversation_id, summary, preferences, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(tenant_id, conversation_id) DO UPDATE SET
                    summary = excluded.summary,
                    preferences = excluded.preferences,
                    updated_at = excluded.updated_at
                """,
                (
                    key.tenant_id,
                    key.conversation_id,
                    summary.model_dump_json(),
                    json.dumps(preferences),
                    now.isoformat(),
                    now.isoformat(),
                )
            )
            conn.commit()
        finally:
            conn.close()

    def load_context(self, key: ConversationKey) -> Optional[Tuple[ConversationSummary, Dict[str, str]]]:
        """
        Load the summary and preferences of a conversation.

        Args:
            key: Conversation key

        Returns:
            (summary, preferences) or None if the conversation is unknown
        """
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT summary, preferences FROM conversations WHERE tenant_id = ? AND conversation_id = ?",
                (key.tenant_id, key.conversation_id)
            ).fetchone()
        finally:
            conn.close()

        if not row:
            return None

        summary = (
            ConversationSummary.model_validate_json(row["summary"])
            if row["summary"] else ConversationSummary()
        )
        preferences = json.loads(row["preferences"]) if row["preferences"] else {}
        return summary, preferences

    def add_turns(self, key: ConversationKey, turns: List[Turn]) -> List[str]:
        """
        Append turns to the log in one transaction.

        Either every new turn is written or none is. Turns whose id is
        already logged are skipped.

        Returns:
            Ids of the turns actually inserted, in input order
        """
        conn = self._get_connection()
        inserted = []
        try:
            for turn in turns:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO turns
                    (tenant_id, conversation_id, turn_id, role, text, timestamp, intent, emotion, confidence)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        key.tenant_id,
                        key.conversation_id,
                        turn.turn_id,
                        turn.role.value,
                        turn.text,
                        turn.timestamp.isoformat(),
                        turn.intent.value if turn.intent else None,
                        turn.emotion.value if turn.emotion else None,
                        turn.confidence,
                    )
                )
                if cursor.rowcount > 0:
                    inserted.append(turn.turn_id)
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
        finally:
            conn.close()
        return inserted

    def get_turn(self, key: ConversationKey, turn_id: str) -> Optional[Turn]:
        """Get one logged turn by id."""
        conn = self._get_connection()
        try:
            row = conn.execute(
                """
                SELECT turn_id, role, text, timestamp, intent, emotion, confidence
                FROM turns
                WHERE tenant_id = ? AND conversation_id = ? AND turn_id = ?
                """,
                (key.tenant_id, key.conversation_id, turn_id)
            ).fetchone()
        finally:
            conn.close()
        return self._row_to_turn(row) if row else None

    @staticmethod
    def _row_to_turn(row: sqlite3.Row) -> Turn:
        return Turn(
            turn_id=row["turn_id"],
            role=row["role"],
            text=row["text"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            intent=row["intent"],
            emotion=row["emotion"],
            confidence=row["confidence"],
        )

    def get_recent_turns(self, key: ConversationKey, limit: int = 20) -> List[Turn]:
        """
        Get most recent turns from the log.

        Args:
            key: Conversation key
            limit: Maximum number of turns to return

        Returns:
            Turns in chronological order
        """
        conn = self._get_connection()
        try:
            rows = conn.execute(
                """
                SELECT turn_id, role, text, timestamp, intent, emotion, confidence
                FROM turns
                WHERE tenant_id = ? AND conversation_id = ?
                ORDER BY timestamp DESC, id DESC
                LIMIT ?
                """,
                (key.tenant_id, key.conversation_id, limit)
            ).fetchall()
        finally:
            conn.close()

        # Reverse to get chronological order
        return [self._row_to_turn(row) for row in reversed(rows)]

    def get_turn_count(self, key: ConversationKey) -> int:
        """Get the number of logged turns in a conversation."""
        conn = self._get_connection()
        try:
            result = conn.execute(
                "SELECT COUNT(*) FROM turns WHERE tenant_id = ? AND conversation_id = ?",
                (key.tenant_id, key.conversation_id)
            ).fetchone()
        finally:
            conn.close()
        return result[0] if result else 0

    def list_conversations(self, tenant_id: str, limit: int = 50) -> List[str]:
        """
        List conversation ids of a tenant, most recently updated first.

        Args:
            tenant_id: Tenant id
            limit: Maximum number of conversations
        """
        conn = self._get_connection()
        try:
            rows = conn.execute(
                """
                SELECT conversation_id FROM conversations
                WHERE tenant_id = ?
                ORDER BY updated_at DESC
                LIMIT ?
                """,
                (tenant_id, limit)
            ).fetchall()
        finally:
            conn.close()
        return [row["conversation_id"] for row in rows]
