"""DuckDB-backed persistence gateway.

This module provides durable storage for chat messages and the single shared
note of each group, plus the user and membership tables the membership
oracle reads. The service implements the singleton pattern to ensure only
one database connection exists at a time.

Database Schema:
    users table:
        - id: User id (issued by the external account service)
        - name: Display name
        - email: Optional email
    group_members table:
        - group_id, user_id: Composite primary key
        - joined_at: When the membership was recorded (UTC)
    messages table:
        - id: Auto-incrementing primary key
        - group_id: Room the message belongs to
        - user_id: Author (always the sending session's identity)
        - user_name: Author display name at send time
        - content: Trimmed message text
        - created_at: When persisted (UTC)
    notes table:
        - group_id: Primary key (at most one note per group)
        - title, content, last_edited_by, updated_at

Thread Safety:
    Calls arrive from the request threadpool, so every statement runs under
    a process-wide lock. The DuckDB connection itself is NOT thread-safe.

Usage:
    store = StudyStore.get_instance()
    message = store.append_chat_message(7, 1, "hi", "Alice")
    note = store.upsert_note(7, "outline v1", 1)
"""
import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional, TypeVar

import duckdb

from studysync.errors import PersistenceError

from .schemas import ChatMessage, SharedNote

logger = logging.getLogger(__name__)

DEFAULT_NOTE_TITLE = "Shared Notes"
STORAGE_ERROR_MESSAGE = "Storage error"

T = TypeVar("T")


class StudyStore:
    """Singleton service for messages, notes and group membership in DuckDB.

    Attributes:
        _instance: Singleton instance of the service.
        _db_path: Path to the DuckDB database file.
    """

    _instance: Optional["StudyStore"] = None
    _db_path: str = "studysync.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        """Initialize the store, creating the schema if needed.

        Args:
            db_path: Path to DuckDB file. Defaults to "studysync.duckdb".
        """
        if db_path:
            self._db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.Lock()
        self._initialize_db()
        logger.info("[Store] Initialized with db=%s", self._db_path)

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "StudyStore":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call).
        """
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close the connection and clear the singleton (used by tests)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        """Create sequences and tables. Safe to call multiple times."""
        conn = self._get_connection()
        conn.execute("CREATE SEQUENCE IF NOT EXISTS messages_seq START 1")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY,
                name VARCHAR NOT NULL,
                email VARCHAR
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS group_members (
                group_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                joined_at TIMESTAMP NOT NULL,
                PRIMARY KEY (group_id, user_id)
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER DEFAULT nextval('messages_seq') PRIMARY KEY,
                group_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                user_name VARCHAR NOT NULL,
                content VARCHAR NOT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS notes (
                group_id INTEGER PRIMARY KEY,
                title VARCHAR NOT NULL,
                content VARCHAR NOT NULL,
                last_edited_by INTEGER NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_messages_group ON messages(group_id)"
        )

    def _run(self, work: Callable[[duckdb.DuckDBPyConnection], T]) -> T:
        """Run ``work`` against the connection while holding the store lock.

        Callers see only STORAGE_ERROR_MESSAGE; the DuckDB error text is
        logged.
        """
        with self._lock:
            try:
                return work(self._get_connection())
            except duckdb.Error as exc:
                logger.error("[Store] Statement failed: %s", exc)
                raise PersistenceError(STORAGE_ERROR_MESSAGE) from exc

    def _execute(self, sql: str, params: Optional[list] = None) -> None:
        self._run(lambda conn: conn.execute(sql, params or []))

    def _fetchone(self, sql: str, params: Optional[list] = None):
        return self._run(lambda conn: conn.execute(sql, params or []).fetchone())

    def _fetchall(self, sql: str, params: Optional[list] = None) -> list:
        return self._run(lambda conn: conn.execute(sql, params or []).fetchall())

    # -----------------------------------------------------------------------
    # Chat messages
    # -----------------------------------------------------------------------

    def append_chat_message(
        self,
        room_id: int,
        author_id: int,
        content: str,
        author_name: str = "",
    ) -> ChatMessage:
        """Durably append a chat message.

        Args:
            room_id: Group the message belongs to.
            author_id: Sending identity's user id.
            content: Already-validated, trimmed message text.
            author_name: Display name to record alongside the message.

        Returns:
            The persisted message with its generated id and timestamp.

        Raises:
            PersistenceError: If the insert fails.
        """
        created_at = datetime.utcnow()
        row = self._fetchone(
            """
            INSERT INTO messages (group_id, user_id, user_name, content, created_at)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id
            """,
            [room_id, author_id, author_name, content, created_at],
        )
        return ChatMessage(
            id=row[0],
            room_id=room_id,
            author_id=author_id,
            author_name=author_name,
            content=content,
            created_at=created_at,
        )

    def get_messages(
        self, room_id: int, limit: int = 50, offset: int = 0
    ) -> List[ChatMessage]:
        """Get a page of a group's history, oldest first.

        The author name comes from the users table when the author is known
        there, falling back to the name recorded at send time.
        """
        rows = self._fetchall(
            """
            SELECT m.id, m.group_id, m.user_id, COALESCE(u.name, m.user_name),
                   m.content, m.created_at
            FROM messages m
            LEFT JOIN users u ON u.id = m.user_id
            WHERE m.group_id = ?
            ORDER BY m.created_at ASC, m.id ASC
            LIMIT ? OFFSET ?
            """,
            [room_id, limit, offset],
        )
        return [
            ChatMessage(
                id=row[0],
                room_id=row[1],
                author_id=row[2],
                author_name=row[3],
                content=row[4],
                created_at=row[5],
            )
            for row in rows
        ]

    # -----------------------------------------------------------------------
    # Shared notes
    # -----------------------------------------------------------------------

    def upsert_note(self, room_id: int, content: str, editor_id: int) -> SharedNote:
        """Overwrite the group's note unconditionally (last write wins).

        The write and the returned row come from one statement, so the
        result always reflects this caller's write.

        Raises:
            PersistenceError: If the upsert fails.
        """
        row = self._fetchone(
            """
            INSERT INTO notes (group_id, title, content, last_edited_by, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (group_id) DO UPDATE SET
                content = excluded.content,
                last_edited_by = excluded.last_edited_by,
                updated_at = excluded.updated_at
            RETURNING group_id, title, content, last_edited_by, updated_at
            """,
            [room_id, DEFAULT_NOTE_TITLE, content, editor_id, datetime.utcnow()],
        )
        return self._note_from_row(room_id, row)

    def get_note(self, room_id: int, editor_id: int) -> SharedNote:
        """Return the group's note, creating an empty one on first access."""

        def create_and_read(conn: duckdb.DuckDBPyConnection):
            conn.execute(
                """
                INSERT INTO notes (group_id, title, content, last_edited_by, updated_at)
                VALUES (?, ?, '', ?, ?)
                ON CONFLICT (group_id) DO NOTHING
                """,
                [room_id, DEFAULT_NOTE_TITLE, editor_id, datetime.utcnow()],
            )
            return conn.execute(
                """
                SELECT group_id, title, content, last_edited_by, updated_at
                FROM notes WHERE group_id = ?
                """,
                [room_id],
            ).fetchone()

        return self._note_from_row(room_id, self._run(create_and_read))

    @staticmethod
    def _note_from_row(room_id: int, row) -> SharedNote:
        if row is None:
            raise PersistenceError(f"Note for group {room_id} was not stored")
        return SharedNote(
            room_id=row[0],
            title=row[1],
            content=row[2],
            last_edited_by=row[3],
            updated_at=row[4],
        )

    # -----------------------------------------------------------------------
    # Users and membership (written by the account/group services)
    # -----------------------------------------------------------------------

    def upsert_user(self, user_id: int, name: str, email: Optional[str] = None) -> None:
        self._execute(
            """
            INSERT INTO users (id, name, email) VALUES (?, ?, ?)
            ON CONFLICT (id) DO UPDATE SET name = excluded.name, email = excluded.email
            """,
            [user_id, name, email],
        )

    def get_user_name(self, user_id: int) -> Optional[str]:
        row = self._fetchone("SELECT name FROM users WHERE id = ?", [user_id])
        return row[0] if row else None

    def add_member(self, group_id: int, user_id: int) -> None:
        self._execute(
            """
            INSERT INTO group_members (group_id, user_id, joined_at)
            VALUES (?, ?, ?)
            ON CONFLICT DO NOTHING
            """,
            [group_id, user_id, datetime.utcnow()],
        )

    def remove_member(self, group_id: int, user_id: int) -> bool:
        result = self._fetchall(
            "DELETE FROM group_members WHERE group_id = ? AND user_id = ? RETURNING user_id",
            [group_id, user_id],
        )
        return len(result) > 0

    def is_member(self, group_id: int, user_id: int) -> bool:
        row = self._fetchone(
            "SELECT 1 FROM group_members WHERE group_id = ? AND user_id = ?",
            [group_id, user_id],
        )
        return row is not None

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
