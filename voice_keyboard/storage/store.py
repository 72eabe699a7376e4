"""
SQLite storage for the personal dictionary and transcription history.

Every operation opens its own connection, so the store can be used from
executor threads as well as the main thread.
"""

import logging
import sqlite3
import uuid
from contextlib import closing
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from ..vocabulary import VocabularyHint

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS dictionary (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    word TEXT NOT NULL,
    spelling TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_dictionary_user ON dictionary (user_id, created_at);

CREATE TABLE IF NOT EXISTS transcriptions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    text TEXT NOT NULL,
    duration INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_transcriptions_user ON transcriptions (user_id, created_at);
"""


@dataclass
class DictionaryEntry:
    """A custom word in a user's dictionary."""
    id: str
    word: str
    spelling: Optional[str]
    created_at: datetime
    updated_at: datetime

    def to_hint(self) -> VocabularyHint:
        return VocabularyHint(word=self.word, spelling=self.spelling)


@dataclass
class TranscriptionRecord:
    """A finalized, saved transcription."""
    id: str
    text: str
    duration: int  # seconds
    created_at: datetime


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TranscriptStore:
    """
    Dictionary and history storage scoped by user id.

    Args:
        db_path: SQLite database file; parent directories are created
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with closing(self._connect()) as conn:
            conn.executescript(SCHEMA)
            conn.commit()

    # Dictionary

    def add_entry(self, user_id: str, word: str, spelling: Optional[str] = None) -> DictionaryEntry:
        """
        Add a word to the user's dictionary.

        Raises:
            ValueError: If word is empty
        """
        word = (word or "").strip()
        if not word:
            raise ValueError("Word is required")
        spelling = (spelling or "").strip() or None

        now = _now()
        entry = DictionaryEntry(
            id=str(uuid.uuid4()),
            word=word,
            spelling=spelling,
            created_at=now,
            updated_at=now
        )
        with closing(self._connect()) as conn:
            conn.execute(
                "INSERT INTO dictionary (id, user_id, word, spelling, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (entry.id, user_id, entry.word, entry.spelling, now.isoformat(), now.isoformat())
            )
            conn.commit()

        logger.info(f"Added dictionary entry {entry.id} for {user_id}")
        return entry

    def list_entries(self, user_id: str) -> List[DictionaryEntry]:
        """List the user's dictionary, newest first."""
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT id, word, spelling, created_at, updated_at FROM dictionary "
                "WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
                (user_id,)
            ).fetchall()
        return [self._entry_from_row(row) for row in rows]

    def get_entry(self, user_id: str, entry_id: str) -> Optional[DictionaryEntry]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT id, word, spelling, created_at, updated_at FROM dictionary "
                "WHERE id = ? AND user_id = ?",
                (entry_id, user_id)
            ).fetchone()
        return self._entry_from_row(row) if row else None

    def update_entry(
        self,
        user_id: str,
        entry_id: str,
        word: str,
        spelling: Optional[str] = None
    ) -> Optional[DictionaryEntry]:
        """
        Replace an entry's word and spelling.

        Returns:
            The updated entry, or None if the user has no such entry.

        Raises:
            ValueError: If word is empty
        """
        word = (word or "").strip()
        if not word:
            raise ValueError("Word is required")
        spelling = (spelling or "").strip() or None

        now = _now().isoformat()
        with closing(self._connect()) as conn:
            cursor = conn.execute(
                "UPDATE dictionary SET word = ?, spelling = ?, updated_at = ? "
                "WHERE id = ? AND user_id = ?",
                (word, spelling, now, entry_id, user_id)
            )
            conn.commit()
            if cursor.rowcount == 0:
                return None
        return self.get_entry(user_id, entry_id)

    def delete_entry(self, user_id: str, entry_id: str) -> bool:
        """Delete an entry. Returns False if it did not exist."""
        with closing(self._connect()) as conn:
            cursor = conn.execute(
                "DELETE FROM dictionary WHERE id = ? AND user_id = ?",
                (entry_id, user_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    def load_vocabulary_hints(self, user_id: str) -> List[VocabularyHint]:
        """Dictionary entries as transcription/cleanup hints."""
        return [entry.to_hint() for entry in self.list_entries(user_id)]

    # History

    def save_transcription(self, user_id: str, text: str, duration: float) -> TranscriptionRecord:
        """Persist a finalized transcription."""
        record = TranscriptionRecord(
            id=str(uuid.uuid4()),
            text=text,
            duration=int(round(duration or 0)),
            created_at=_now()
        )
        with closing(self._connect()) as conn:
            conn.execute(
                "INSERT INTO transcriptions (id, user_id, text, duration, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (record.id, user_id, record.text, record.duration, record.created_at.isoformat())
            )
            conn.commit()
        return record

    def list_transcriptions(self, user_id: str, limit: int = 20, offset: int = 0) -> List[TranscriptionRecord]:
        """One page of the user's history, newest first."""
        if limit <= 0:
            raise ValueError(f"Limit must be positive, got {limit}")
        if offset < 0:
            raise ValueError(f"Offset cannot be negative, got {offset}")

        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT id, text, duration, created_at FROM transcriptions "
                "WHERE user_id = ? ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
                (user_id, limit, offset)
            ).fetchall()
        return [self._record_from_row(row) for row in rows]

    def count_transcriptions(self, user_id: str) -> int:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM transcriptions WHERE user_id = ?",
                (user_id,)
            ).fetchone()
        return row[0]

    def get_transcription(self, user_id: str, transcription_id: str) -> Optional[TranscriptionRecord]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT id, text, duration, created_at FROM transcriptions "
                "WHERE id = ? AND user_id = ?",
                (transcription_id, user_id)
            ).fetchone()
        return self._record_from_row(row) if row else None

    def delete_transcription(self, user_id: str, transcription_id: str) -> bool:
        """Delete a transcription. Returns False if it did not exist."""
        with closing(self._connect()) as conn:
            cursor = conn.execute(
                "DELETE FROM transcriptions WHERE id = ? AND user_id = ?",
                (transcription_id, user_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    @staticmethod
    def _entry_from_row(row: sqlite3.Row) -> DictionaryEntry:
        return DictionaryEntry(
            id=row["id"],
            word=row["word"],
            spelling=row["spelling"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"])
        )

    @staticmethod
    def _record_from_row(row: sqlite3.Row) -> TranscriptionRecord:
        return TranscriptionRecord(
            id=row["id"],
            text=row["text"],
            duration=row["duration"],
            created_at=datetime.fromisoformat(row["created_at"])
        )
