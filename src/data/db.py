"""
Smart Check-ins — SQLite storage.

Holds the check-in log (cooldown pointer + history fed back to the LLM),
snoozed items, per-conversation email tracking, known partners and user
memory. Timestamps are stored as ISO-8601 UTC strings so that string order
is chronological order.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from src.data.models import (
    SOURCE_TYPES,
    CheckinLogEntry,
    EmailTracking,
    MemoryEntry,
    PartnershipInfo,
    SnoozedItem,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_timestamp(value: datetime) -> str:
    """Normalize a datetime to the stored UTC string form."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def parse_db_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _check_source_type(source_type: str) -> None:
    if source_type not in SOURCE_TYPES:
        raise ValueError(f"Unknown source type {source_type!r}")


class CheckinDB:
    """SQLite-backed state for the check-in pipeline."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @property
    def path(self) -> str:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create tables if they don't exist."""
        with self._connect() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS checkin_log (
                    id                INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp         TEXT    NOT NULL,
                    decision          TEXT    NOT NULL CHECK (decision IN ('NONE', 'TEXT', 'CALL')),
                    urgency           INTEGER NOT NULL DEFAULT 0,
                    summary           TEXT    NOT NULL DEFAULT '',
                    sources_available TEXT    NOT NULL DEFAULT '[]'
                );

                CREATE TABLE IF NOT EXISTS snoozed_items (
                    id           INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_type  TEXT    NOT NULL CHECK (source_type IN ('email', 'task', 'calendar')),
                    source_id    TEXT    NOT NULL,
                    snooze_until TEXT    NOT NULL,
                    created_at   TEXT    NOT NULL,
                    UNIQUE(source_type, source_id)
                );

                CREATE TABLE IF NOT EXISTS email_tracking (
                    id              INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_id TEXT    NOT NULL UNIQUE,
                    first_seen      TEXT    NOT NULL,
                    last_notified   TEXT,
                    reply_detected  INTEGER NOT NULL DEFAULT 0
                );

                CREATE TABLE IF NOT EXISTS partnerships (
                    id            INTEGER PRIMARY KEY AUTOINCREMENT,
                    domain        TEXT    NOT NULL UNIQUE,
                    company_name  TEXT    NOT NULL,
                    last_contact  TEXT,
                    quote_amount  REAL,
                    contact_count INTEGER NOT NULL DEFAULT 0,
                    status        TEXT    NOT NULL DEFAULT 'active'
                );

                CREATE TABLE IF NOT EXISTS memory (
                    id         INTEGER PRIMARY KEY AUTOINCREMENT,
                    key        TEXT    NOT NULL UNIQUE,
                    value      TEXT    NOT NULL,
                    category   TEXT    NOT NULL DEFAULT 'general',
                    updated_at TEXT    NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_checkin_log_timestamp ON checkin_log(timestamp);
                CREATE INDEX IF NOT EXISTS idx_snoozed_items_until ON snoozed_items(snooze_until);
            """)
        logger.debug("Check-in tables initialized at %s", self._db_path)

    # ------------------------------------------------------------------
    # Check-in log
    # ------------------------------------------------------------------

    def record_checkin(
        self,
        decision: str,
        urgency: int,
        summary: str,
        sources_available: list[str],
        at: datetime | None = None,
    ) -> CheckinLogEntry:
        """Append a check-in row. The newest row drives the cooldown rule."""
        timestamp = to_db_timestamp(at or utcnow())
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO checkin_log (timestamp, decision, urgency, summary, sources_available)
                VALUES (?, ?, ?, ?, ?)
                """,
                (timestamp, decision, urgency, summary, json.dumps(sources_available)),
            )
            entry_id = cursor.lastrowid
        logger.info("Check-in logged: #%d %s (urgency %d)", entry_id, decision, urgency)
        return CheckinLogEntry(
            id=entry_id,
            timestamp=timestamp,
            decision=decision,
            urgency=urgency,
            summary=summary,
            sources_available=list(sources_available),
        )

    def get_recent_checkins(self, limit: int = 5) -> list[CheckinLogEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM checkin_log ORDER BY timestamp DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [
            CheckinLogEntry(
                id=r["id"],
                timestamp=r["timestamp"],
                decision=r["decision"],
                urgency=r["urgency"],
                summary=r["summary"],
                sources_available=json.loads(r["sources_available"] or "[]"),
            )
            for r in rows
        ]

    def get_last_cycle_timestamp(self) -> datetime | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT timestamp FROM checkin_log ORDER BY timestamp DESC, id DESC LIMIT 1"
            ).fetchone()
        if row is None:
            return None
        return parse_db_timestamp(row["timestamp"])

    # ------------------------------------------------------------------
    # Snoozes
    # ------------------------------------------------------------------

    def snooze_item(
        self,
        source_type: str,
        source_id: str,
        snooze_until: datetime,
        now: datetime | None = None,
    ) -> None:
        """Snooze an item. Re-snoozing overwrites the expiry, never extends it."""
        _check_source_type(source_type)
        until = to_db_timestamp(snooze_until)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO snoozed_items (source_type, source_id, snooze_until, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(source_type, source_id) DO UPDATE SET snooze_until = excluded.snooze_until
                """,
                (source_type, source_id, until, to_db_timestamp(now or utcnow())),
            )
        logger.info("Snoozed %s %s until %s", source_type, source_id, until)

    def unsnooze_item(self, source_type: str, source_id: str) -> bool:
        _check_source_type(source_type)
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM snoozed_items WHERE source_type = ? AND source_id = ?",
                (source_type, source_id),
            )
        return cursor.rowcount > 0

    def is_snoozed(
        self, source_type: str, source_id: str, now: datetime | None = None,
    ) -> bool:
        """True only while the stored expiry is in the future.

        Expired rows that have not been purged yet do not count.
        """
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM snoozed_items
                WHERE source_type = ? AND source_id = ? AND snooze_until > ?
                """,
                (source_type, source_id, to_db_timestamp(now or utcnow())),
            ).fetchone()
        return row is not None

    def list_snoozed(self, now: datetime | None = None) -> list[SnoozedItem]:
        """Return currently active snoozes, soonest expiry first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM snoozed_items WHERE snooze_until > ? ORDER BY snooze_until",
                (to_db_timestamp(now or utcnow()),),
            ).fetchall()
        return [
            SnoozedItem(
                id=r["id"],
                source_type=r["source_type"],
                source_id=r["source_id"],
                snooze_until=r["snooze_until"],
                created_at=r["created_at"],
            )
            for r in rows
        ]

    def purge_expired_snoozes(self, now: datetime | None = None) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM snoozed_items WHERE snooze_until <= ?",
                (to_db_timestamp(now or utcnow()),),
            )
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Email tracking
    # ------------------------------------------------------------------

    def track_email(self, conversation_id: str, now: datetime | None = None) -> EmailTracking:
        """Create the tracking row on first sight; return the current row."""
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO email_tracking (conversation_id, first_seen) VALUES (?, ?)",
                (conversation_id, to_db_timestamp(now or utcnow())),
            )
        return self.get_email_tracking(conversation_id)

    def mark_email_notified(self, conversation_id: str, now: datetime | None = None) -> None:
        stamp = to_db_timestamp(now or utcnow())
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO email_tracking (conversation_id, first_seen, last_notified)
                VALUES (?, ?, ?)
                ON CONFLICT(conversation_id) DO UPDATE SET last_notified = excluded.last_notified
                """,
                (conversation_id, stamp, stamp),
            )

    def mark_email_replied(self, conversation_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE email_tracking SET reply_detected = 1 WHERE conversation_id = ?",
                (conversation_id,),
            )

    def get_email_tracking(self, conversation_id: str) -> EmailTracking | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM email_tracking WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()
        if row is None:
            return None
        return EmailTracking(
            id=row["id"],
            conversation_id=row["conversation_id"],
            first_seen=row["first_seen"],
            last_notified=row["last_notified"],
            reply_detected=bool(row["reply_detected"]),
        )

    # ------------------------------------------------------------------
    # Partnerships
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_partnership(row: sqlite3.Row) -> PartnershipInfo:
        return PartnershipInfo(
            id=row["id"],
            domain=row["domain"],
            company_name=row["company_name"],
            last_contact=row["last_contact"],
            quote_amount=row["quote_amount"],
            contact_count=row["contact_count"],
            status=row["status"],
        )

    def upsert_partnership(
        self,
        domain: str,
        company_name: str,
        quote_amount: float | None = None,
        now: datetime | None = None,
    ) -> PartnershipInfo:
        domain = domain.lower().strip()
        stamp = to_db_timestamp(now or utcnow())
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO partnerships (domain, company_name, last_contact, quote_amount, contact_count)
                VALUES (?, ?, ?, ?, 1)
                ON CONFLICT(domain) DO UPDATE SET
                    company_name  = excluded.company_name,
                    last_contact  = excluded.last_contact,
                    contact_count = contact_count + 1,
                    quote_amount  = COALESCE(excluded.quote_amount, quote_amount)
                """,
                (domain, company_name, stamp, quote_amount),
            )
        logger.info("Partnership upserted: %s (%s)", domain, company_name)
        return self.get_partnership_by_domain(domain)

    def get_partnership_by_domain(self, domain: str) -> PartnershipInfo | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM partnerships WHERE domain = ?", (domain.lower(),)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_partnership(row)

    def get_all_partnerships(self) -> list[PartnershipInfo]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM partnerships WHERE status = 'active' ORDER BY last_contact DESC"
            ).fetchall()
        return [self._row_to_partnership(r) for r in rows]

    # ------------------------------------------------------------------
    # Memory
    # ------------------------------------------------------------------

    def set_memory(
        self, key: str, value: str, category: str = "general", now: datetime | None = None,
    ) -> None:
        stamp = to_db_timestamp(now or utcnow())
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO memory (key, value, category, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    category = excluded.category,
                    updated_at = excluded.updated_at
                """,
                (key, value, category, stamp),
            )
        logger.info("Memory set: %s", key)

    def get_all_memory(self) -> list[MemoryEntry]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM memory ORDER BY updated_at DESC").fetchall()
        return [
            MemoryEntry(
                id=r["id"],
                key=r["key"],
                value=r["value"],
                category=r["category"],
                updated_at=r["updated_at"],
            )
            for r in rows
        ]
