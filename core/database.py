"""
Database Module - SQLite-based storage for accounts, rules, leads and campaigns
===============================================================================

This module provides database operations including:
- Account documents (API key hash, package, auto-reply toggle)
- Auto-reply tactics (ordered rule tables, stored as JSON)
- Lead sets with set semantics
- Campaign documents
- Inbound/outbound message log with inbound de-duplication
"""

import sqlite3
import json
from pathlib import Path
from typing import Optional, List, Dict, Any, Sequence, Tuple
from contextlib import contextmanager
import threading

from .exceptions import DatabaseError
from .logging import get_logger

logger = get_logger("core.database")


class Database:
    """
    SQLite database manager for the Lead Agent.

    Provides thread-safe database operations with thread-local
    connections and automatic schema creation.

    Attributes:
        db_path (str): Path to SQLite database file
    """

    def __init__(self, db_path: str):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file

        Raises:
            DatabaseError: If database cannot be initialized
        """
        self.db_path = db_path
        self._local = threading.local()

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get thread-local database connection.

        Returns:
            sqlite3.Connection: Database connection for current thread
        """
        if getattr(self._local, "connection", None) is None:
            conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode = WAL")
            self._local.connection = conn
        return self._local.connection

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions.

        Commits on success and rolls back on any error; the error is
        re-raised for the caller to translate.

        Yields:
            sqlite3.Connection: Database connection

        Example:
            with db.transaction() as conn:
                conn.execute("INSERT INTO leads ...")
        """
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _init_schema(self) -> None:
        """
        Initialize database schema.

        Raises:
            DatabaseError: If schema creation fails
        """
        schema_sql = """
        -- Accounts: one document per customer account
        CREATE TABLE IF NOT EXISTS accounts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            unique_id TEXT NOT NULL UNIQUE,
            email TEXT NOT NULL UNIQUE,
            api_key_hash TEXT NOT NULL UNIQUE,
            package TEXT,
            auto_reply_enabled INTEGER DEFAULT 0,
            active_tactic TEXT,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        );

        -- Tactics: named, ordered auto-reply rule tables
        CREATE TABLE IF NOT EXISTS tactics (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            account_id INTEGER NOT NULL,
            position INTEGER NOT NULL,
            name TEXT NOT NULL,
            rows TEXT NOT NULL,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(account_id, name),
            FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
        );

        -- Leads: set semantics on (account, phone, source)
        CREATE TABLE IF NOT EXISTS leads (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            account_id INTEGER NOT NULL,
            name TEXT,
            phone_number TEXT NOT NULL,
            source TEXT NOT NULL,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(account_id, phone_number, source),
            FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
        );

        -- Campaigns: outbound message to a list of leads
        CREATE TABLE IF NOT EXISTS campaigns (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            account_id INTEGER NOT NULL,
            campaign_id TEXT NOT NULL,
            campaign_name TEXT NOT NULL,
            from_number TEXT NOT NULL,
            message TEXT NOT NULL,
            leads TEXT NOT NULL,
            media_url TEXT,
            time_zone TEXT,
            schedule_time TEXT,
            completed INTEGER DEFAULT 0,
            UNIQUE(account_id, campaign_id),
            FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
        );

        -- Messages: inbound and outbound message log
        CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            account_id INTEGER NOT NULL,
            direction TEXT NOT NULL CHECK (direction IN ('incoming', 'outgoing')),
            external_id TEXT,
            phone_number TEXT NOT NULL,
            platform TEXT,
            message TEXT NOT NULL,
            status TEXT DEFAULT 'received'
                CHECK (status IN ('received', 'scheduled', 'sent', 'failed', 'cancelled')),
            rule_index INTEGER,
            response_to INTEGER,
            error TEXT,
            timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE,
            FOREIGN KEY (response_to) REFERENCES messages(id) ON DELETE SET NULL
        );

        CREATE UNIQUE INDEX IF NOT EXISTS idx_messages_inbound_external
            ON messages(account_id, external_id) WHERE direction = 'incoming';
        CREATE INDEX IF NOT EXISTS idx_messages_account ON messages(account_id, timestamp);
        CREATE INDEX IF NOT EXISTS idx_tactics_account ON tactics(account_id, position);
        CREATE INDEX IF NOT EXISTS idx_leads_account ON leads(account_id);
        """

        try:
            with self.transaction() as conn:
                conn.executescript(schema_sql)
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to initialize database schema: {e}")

    # === Account Operations ===

    @staticmethod
    def _account_from_row(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
        if row is None:
            return None
        account = dict(row)
        account["auto_reply_enabled"] = bool(account["auto_reply_enabled"])
        return account

    def create_account(
        self,
        email: str,
        unique_id: str,
        api_key_hash: str,
        package: Optional[str] = None,
        auto_reply_enabled: bool = False
    ) -> Dict[str, Any]:
        """
        Create an account document.

        Args:
            email: Account owner's email
            unique_id: Public identifier used in webhook URLs
            api_key_hash: SHA-256 hash of the account's API key
            package: Subscription package name
            auto_reply_enabled: Initial auto-reply toggle state

        Returns:
            The created account

        Raises:
            DatabaseError: If the email or identifier is already taken
        """
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO accounts (unique_id, email, api_key_hash, package, auto_reply_enabled)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (unique_id, email, api_key_hash, package, int(auto_reply_enabled))
                )
                account_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise DatabaseError(f"Account already exists: {e}", {"email": email})
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to create account: {e}")

        logger.info(f"Created account {unique_id}")
        return self.get_account(account_id)

    def _fetch_account(self, column: str, value: Any) -> Optional[Dict[str, Any]]:
        try:
            with self.transaction() as conn:
                cursor = conn.execute(f"SELECT * FROM accounts WHERE {column} = ?", (value,))
                return self._account_from_row(cursor.fetchone())
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to get account: {e}")

    def get_account(self, account_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_account("id", account_id)

    def get_account_by_unique_id(self, unique_id: str) -> Optional[Dict[str, Any]]:
        return self._fetch_account("unique_id", unique_id)

    def get_account_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self._fetch_account("email", email)

    def get_account_by_api_key_hash(self, api_key_hash: str) -> Optional[Dict[str, Any]]:
        return self._fetch_account("api_key_hash", api_key_hash)

    def list_accounts(self) -> List[Dict[str, Any]]:
        try:
            with self.transaction() as conn:
                cursor = conn.execute("SELECT * FROM accounts ORDER BY id")
                return [self._account_from_row(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to list accounts: {e}")

    def _update_account(self, account_id: int, column: str, value: Any) -> bool:
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    f"UPDATE accounts SET {column} = ? WHERE id = ?",
                    (value, account_id)
                )
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to update account {column}: {e}")

    def set_auto_reply(self, account_id: int, enabled: bool) -> bool:
        return self._update_account(account_id, "auto_reply_enabled", int(enabled))

    def set_package(self, account_id: int, package: Optional[str]) -> bool:
        return self._update_account(account_id, "package", package)

    def set_active_tactic(self, account_id: int, name: Optional[str]) -> bool:
        return self._update_account(account_id, "active_tactic", name)

    # === Tactic Operations ===

    def get_tactics(self, account_id: int) -> List[Dict[str, Any]]:
        """
        Get an account's tactics in saved order.

        Returns:
            List of ``{"name": str, "rows": list}`` documents
        """
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    "SELECT name, rows FROM tactics WHERE account_id = ? ORDER BY position",
                    (account_id,)
                )
                return [
                    {"name": row["name"], "rows": json.loads(row["rows"])}
                    for row in cursor.fetchall()
                ]
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to get tactics: {e}")
        except json.JSONDecodeError as e:
            raise DatabaseError(f"Corrupt tactic rows: {e}", {"account_id": account_id})

    def replace_tactics(
        self,
        account_id: int,
        tactics: Sequence[Tuple[str, List[Dict[str, Any]]]],
        active_tactic: Optional[str] = None
    ) -> None:
        """
        Replace all of an account's tactics in a single transaction.

        Args:
            account_id: Account ID
            tactics: Ordered ``(name, rows)`` pairs
            active_tactic: Name of the tactic to evaluate, or None
        """
        try:
            with self.transaction() as conn:
                conn.execute("DELETE FROM tactics WHERE account_id = ?", (account_id,))
                conn.executemany(
                    """
                    INSERT INTO tactics (account_id, position, name, rows)
                    VALUES (?, ?, ?, ?)
                    """,
                    [
                        (account_id, position, name, json.dumps(rows))
                        for position, (name, rows) in enumerate(tactics)
                    ]
                )
                conn.execute(
                    "UPDATE accounts SET active_tactic = ? WHERE id = ?",
                    (active_tactic, account_id)
                )
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to save tactics: {e}")

    # === Lead Operations ===

    def add_lead(
        self,
        account_id: int,
        name: Optional[str],
        phone_number: str,
        source: str
    ) -> bool:
        """
        Add a lead to an account's lead set.

        Returns:
            True if the lead was added, False if it was already present
        """
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO leads (account_id, name, phone_number, source)
                    VALUES (?, ?, ?, ?)
                    """,
                    (account_id, name, phone_number, source)
                )
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to add lead: {e}")

    def get_leads(self, account_id: int, source: Optional[str] = None) -> List[Dict[str, Any]]:
        query = "SELECT name, phone_number, source, created_at FROM leads WHERE account_id = ?"
        params: List[Any] = [account_id]
        if source:
            query += " AND source = ?"
            params.append(source)
        query += " ORDER BY id"

        try:
            with self.transaction() as conn:
                return [dict(row) for row in conn.execute(query, params).fetchall()]
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to get leads: {e}")

    # === Campaign Operations ===

    @staticmethod
    def _campaign_from_row(row: Optional[sqlite3.Row]) -> Optional[Dict[str, Any]]:
        if row is None:
            return None
        return {
            "campaignId": row["campaign_id"],
            "campaignName": row["campaign_name"],
            "fromNumber": row["from_number"],
            "message": row["message"],
            "leads": json.loads(row["leads"]),
            "mediaURL": row["media_url"],
            "timeZone": row["time_zone"],
            "scheduleTime": row["schedule_time"],
            "completed": bool(row["completed"]),
        }

    def add_campaign(self, account_id: int, campaign: Dict[str, Any]) -> bool:
        """
        Append a campaign document to an account.

        Args:
            account_id: Account ID
            campaign: Campaign document (camelCase keys)

        Returns:
            True if stored, False if the campaign id already exists
        """
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO campaigns (
                        account_id, campaign_id, campaign_name, from_number, message,
                        leads, media_url, time_zone, schedule_time, completed
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        account_id,
                        campaign["campaignId"],
                        campaign["campaignName"],
                        campaign["fromNumber"],
                        campaign["message"],
                        json.dumps(campaign["leads"]),
                        campaign.get("mediaURL"),
                        campaign.get("timeZone"),
                        campaign.get("scheduleTime"),
                        int(campaign.get("completed", False)),
                    )
                )
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to add campaign: {e}")

    def get_campaigns(self, account_id: int) -> List[Dict[str, Any]]:
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    "SELECT * FROM campaigns WHERE account_id = ? ORDER BY id",
                    (account_id,)
                )
                return [self._campaign_from_row(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to get campaigns: {e}")

    def get_campaign(self, account_id: int, campaign_id: str) -> Optional[Dict[str, Any]]:
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    "SELECT * FROM campaigns WHERE account_id = ? AND campaign_id = ?",
                    (account_id, campaign_id)
                )
                return self._campaign_from_row(cursor.fetchone())
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to get campaign: {e}")

    def mark_campaign_completed(self, account_id: int, campaign_id: str) -> bool:
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    "UPDATE campaigns SET completed = 1 WHERE account_id = ? AND campaign_id = ?",
                    (account_id, campaign_id)
                )
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to update campaign: {e}")

    # === Message Operations ===

    def record_inbound(
        self,
        account_id: int,
        external_id: str,
        phone_number: str,
        message: str,
        platform: Optional[str] = None
    ) -> Optional[int]:
        """
        Record an inbound message unless it was seen before.

        Args:
            account_id: Account ID
            external_id: Stable provider message id (or fingerprint)

        Returns:
            Row ID of the new message, or None for a duplicate
        """
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO messages
                        (account_id, direction, external_id, phone_number, platform, message, status)
                    VALUES (?, 'incoming', ?, ?, ?, ?, 'received')
                    """,
                    (account_id, external_id, phone_number, platform, message)
                )
                if cursor.rowcount == 0:
                    return None
                return cursor.lastrowid
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to record inbound message: {e}")

    def add_outgoing(
        self,
        account_id: int,
        phone_number: str,
        message: str,
        status: str = "sent",
        response_to: Optional[int] = None,
        rule_index: Optional[int] = None,
        error: Optional[str] = None
    ) -> int:
        """
        Record an outgoing message.

        Returns:
            int: ID of inserted message
        """
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO messages
                        (account_id, direction, phone_number, message, status,
                         rule_index, response_to, error)
                    VALUES (?, 'outgoing', ?, ?, ?, ?, ?, ?)
                    """,
                    (account_id, phone_number, message, status, rule_index, response_to, error)
                )
                return cursor.lastrowid
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to add outgoing message: {e}")

    def update_message_status(
        self,
        message_id: int,
        status: str,
        error: Optional[str] = None
    ) -> None:
        try:
            with self.transaction() as conn:
                conn.execute(
                    "UPDATE messages SET status = ?, error = ? WHERE id = ?",
                    (status, error, message_id)
                )
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to update message status: {e}")

    def cancel_scheduled_messages(self, account_id: int) -> int:
        """
        Mark an account's scheduled outgoing messages as cancelled.

        Returns:
            Number of messages updated
        """
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    """
                    UPDATE messages SET status = 'cancelled'
                    WHERE account_id = ? AND direction = 'outgoing' AND status = 'scheduled'
                    """,
                    (account_id,)
                )
                return cursor.rowcount
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to cancel scheduled messages: {e}")

    def get_message(self, message_id: int) -> Optional[Dict[str, Any]]:
        try:
            with self.transaction() as conn:
                row = conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
                return dict(row) if row else None
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to get message: {e}")

    def get_messages(
        self,
        account_id: int,
        phone_number: Optional[str] = None,
        direction: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        """
        Retrieve an account's messages, newest first.
        """
        query = "SELECT * FROM messages WHERE account_id = ?"
        params: List[Any] = [account_id]

        if phone_number:
            query += " AND phone_number = ?"
            params.append(phone_number)

        if direction:
            query += " AND direction = ?"
            params.append(direction)

        query += " ORDER BY id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        try:
            with self.transaction() as conn:
                return [dict(row) for row in conn.execute(query, params).fetchall()]
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to get messages: {e}")

    # === Statistics ===

    def get_statistics(self, account_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Get database statistics, optionally for a single account.

        Returns:
            Dictionary with various statistics
        """
        where = " WHERE account_id = ?" if account_id is not None else ""
        params = (account_id,) if account_id is not None else ()

        try:
            with self.transaction() as conn:
                stats: Dict[str, Any] = {}

                cursor = conn.execute(
                    f"SELECT direction, status, COUNT(*) AS count FROM messages{where} "
                    "GROUP BY direction, status",
                    params
                )
                messages: Dict[str, Dict[str, int]] = {}
                for row in cursor.fetchall():
                    messages.setdefault(row["direction"], {})[row["status"]] = row["count"]
                stats["messages"] = messages

                stats["leads"] = conn.execute(
                    f"SELECT COUNT(*) AS count FROM leads{where}", params
                ).fetchone()["count"]

                cursor = conn.execute(
                    f"SELECT completed, COUNT(*) AS count FROM campaigns{where} GROUP BY completed",
                    params
                )
                campaigns = {"completed": 0, "pending": 0}
                for row in cursor.fetchall():
                    campaigns["completed" if row["completed"] else "pending"] = row["count"]
                stats["campaigns"] = campaigns

                if account_id is None:
                    stats["accounts"] = conn.execute(
                        "SELECT COUNT(*) AS count FROM accounts"
                    ).fetchone()["count"]

                return stats
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to get statistics: {e}")

    def close(self) -> None:
        """Close database connection for current thread."""
        if getattr(self._local, "connection", None) is not None:
            self._local.connection.close()
            self._local.connection = None


def init_database(db_path: str) -> Database:
    """
    Initialize and return a database instance.

    This is the preferred way to create a database instance.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Database instance
    """
    return Database(db_path)
