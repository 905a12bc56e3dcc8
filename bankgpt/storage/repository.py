"""
Repository pattern for data access.

Conversation transcripts (append-only, cleared only by explicit reset)
and the append-only usage ledger.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import ConversationTurn, Role, UsageRecord


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the conversation and usage tables if they don't exist.

    usage_record is an append-only ledger: no UPDATE or DELETE
    operations should ever be performed on it.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS conversation_turn (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id TEXT NOT NULL,
                role TEXT NOT NULL,
                text TEXT NOT NULL,
                token_count INTEGER NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_conversation_turn_conversation
            ON conversation_turn (conversation_id, id)
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS usage_record (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                model TEXT NOT NULL,
                prompt_tokens INTEGER NOT NULL,
                completion_tokens INTEGER NOT NULL,
                total_tokens INTEGER NOT NULL,
                cost REAL NOT NULL,
                conversation_id TEXT,
                request_id TEXT
            )
        """)
        conn.commit()
    finally:
        conn.close()


class ConversationRepository:
    """Document-append store for conversation transcripts."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def append_turns(self, conversation_id: str, turns: List[ConversationTurn]) -> None:
        """Append turns atomically, preserving their order.

        Args:
            conversation_id: Conversation to append to
            turns: Turns in chronological order
        """
        if not turns:
            return

        created_at = datetime.now().isoformat()
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN TRANSACTION")
            for turn in turns:
                conn.execute("""
                    INSERT INTO conversation_turn
                    (conversation_id, role, text, token_count, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (
                    conversation_id,
                    turn.role.value,
                    turn.text,
                    turn.token_count,
                    created_at
                ))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def load_turns(self, conversation_id: str, limit: Optional[int] = None) -> List[ConversationTurn]:
        """Load a conversation's turns, oldest first.

        Args:
            conversation_id: Conversation to load
            limit: Only return the most recent `limit` turns

        Returns:
            Turns in chronological order (empty for unknown conversations)
        """
        conn = get_connection(self.db_path)
        try:
            query = """
                SELECT role, text, token_count FROM conversation_turn
                WHERE conversation_id = ?
                ORDER BY id DESC
            """
            params: list = [conversation_id]
            if limit is not None:
                query += " LIMIT ?"
                params.append(limit)

            rows = conn.execute(query, params).fetchall()
            return [
                ConversationTurn(role=Role(row[0]), text=row[1], token_count=row[2])
                for row in reversed(rows)
            ]
        finally:
            conn.close()

    def reset(self, conversation_id: str) -> int:
        """Delete a conversation's transcript. Returns turns removed."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "DELETE FROM conversation_turn WHERE conversation_id = ?",
                (conversation_id,)
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def ping(self) -> bool:
        conn = get_connection(self.db_path)
        try:
            conn.execute("SELECT 1 FROM conversation_turn LIMIT 1")
            return True
        finally:
            conn.close()


class UsageRepository:
    """Read access to the usage ledger for reporting."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def get_recent_records(
        self,
        model: Optional[str] = None,
        days: Optional[int] = None,
        limit: int = 1000
    ) -> List[UsageRecord]:
        """Get recent usage records with optional filtering.

        Args:
            model: Optional filter for specific model
            days: Optional number of days to look back
            limit: Maximum number of records to return

        Returns:
            List of usage records ordered by timestamp (newest first)
        """
        conn = get_connection(self.db_path)
        try:
            query = """
                SELECT timestamp, model, prompt_tokens, completion_tokens,
                       total_tokens, cost, conversation_id, request_id
                FROM usage_record
            """
            params: list = []
            conditions = []

            if model:
                conditions.append("model = ?")
                params.append(model)
            if days is not None:
                cutoff = (datetime.now() - timedelta(days=days)).isoformat()
                conditions.append("timestamp >= ?")
                params.append(cutoff)

            if conditions:
                query += " WHERE " + " AND ".join(conditions)

            query += " ORDER BY timestamp DESC LIMIT ?"
            params.append(limit)

            cursor = conn.execute(query, params)
            return [_row_to_record(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_usage_stats(self, days: int = 1) -> Dict[str, Dict[str, float]]:
        """Per-model totals for the look-back window.

        Args:
            days: Number of days to include

        Returns:
            Mapping of model -> {requests, total_tokens, total_cost}
        """
        conn = get_connection(self.db_path)
        try:
            cutoff = (datetime.now() - timedelta(days=days)).isoformat()
            cursor = conn.execute("""
                SELECT model, COUNT(*), SUM(total_tokens), SUM(cost)
                FROM usage_record
                WHERE timestamp >= ?
                GROUP BY model
                ORDER BY model
            """, (cutoff,))
            return {
                row[0]: {
                    "requests": row[1] or 0,
                    "total_tokens": row[2] or 0,
                    "total_cost": float(row[3] or 0),
                }
                for row in cursor.fetchall()
            }
        finally:
            conn.close()

    def get_total_cost(self, since: datetime) -> float:
        """Total recorded cost at or after `since` (0.0 when none)."""
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT SUM(cost) FROM usage_record WHERE timestamp >= ?",
                (since.isoformat(),)
            ).fetchone()
            return float(row[0] or 0)
        finally:
            conn.close()


def insert_usage_record(record: UsageRecord, db_path: str = DEFAULT_DB_PATH) -> None:
    """Insert a single usage record into the append-only ledger.

    Args:
        record: The usage record to store
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO usage_record
            (timestamp, model, prompt_tokens, completion_tokens,
             total_tokens, cost, conversation_id, request_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            record.timestamp.isoformat(),
            record.model,
            record.prompt_tokens,
            record.completion_tokens,
            record.total_tokens,
            record.cost,
            record.conversation_id,
            record.request_id
        ))
        conn.commit()
    finally:
        conn.close()


def _row_to_record(row) -> UsageRecord:
    return UsageRecord(
        timestamp=datetime.fromisoformat(row[0]),
        model=row[1],
        prompt_tokens=row[2],
        completion_tokens=row[3],
        total_tokens=row[4],
        cost=row[5],
        conversation_id=row[6],
        request_id=row[7]
    )
