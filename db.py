"""Database layer for EasyPrompt.

Uses aiosqlite for async SQLite with WAL mode. A ``Database`` handle is
constructed once at startup (see ``app.lifespan``) and passed explicitly to
the services that need it; every query opens its own short-lived connection.
"""

import logging
import uuid
from pathlib import Path
from typing import Optional

import aiosqlite

from keyvault import EncryptedSecret

logger = logging.getLogger(__name__)


class Database:
    """Connection helpers plus the users, sessions and provider_configs tables."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def _path(self) -> str:
        return str(self.path)

    # --- Connection helpers ---

    async def fetch_one(self, query: str, params: tuple = ()) -> dict | None:
        """Execute query and return one row as dict, or None."""
        async with aiosqlite.connect(self._path()) as conn:
            await conn.execute("PRAGMA busy_timeout=5000")
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute(query, params)
            row = await cursor.fetchone()
            return dict(row) if row else None

    async def fetch_all(self, query: str, params: tuple = ()) -> list[dict]:
        """Execute query and return all rows as list of dicts."""
        async with aiosqlite.connect(self._path()) as conn:
            await conn.execute("PRAGMA busy_timeout=5000")
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return [dict(r) for r in rows]

    async def execute(self, query: str, params: tuple = ()) -> None:
        """Execute a write query (INSERT/UPDATE/DELETE) with auto-commit."""
        async with aiosqlite.connect(self._path()) as conn:
            await conn.execute("PRAGMA busy_timeout=5000")
            await conn.execute("PRAGMA foreign_keys=ON")
            await conn.execute(query, params)
            await conn.commit()

    async def execute_returning_row(self, queries: list[tuple[str, tuple]], fetch_query: str, fetch_params: tuple) -> dict | None:
        """Execute write queries then fetch a row in the same connection."""
        async with aiosqlite.connect(self._path()) as conn:
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA busy_timeout=5000")
            await conn.execute("PRAGMA foreign_keys=ON")
            for query, params in queries:
                await conn.execute(query, params)
            await conn.commit()
            cursor = await conn.execute(fetch_query, fetch_params)
            row = await cursor.fetchone()
            return dict(row) if row else None

    async def execute_returning_rowcount(self, query: str, params: tuple = ()) -> int:
        """Execute a write query and return cursor.rowcount."""
        async with aiosqlite.connect(self._path()) as conn:
            await conn.execute("PRAGMA busy_timeout=5000")
            await conn.execute("PRAGMA foreign_keys=ON")
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    # --- Schema ---

    async def init_db(self):
        """Create all tables if they don't exist. Called once at app startup."""
        logger.info("Initializing database at %s", self.path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self._path()) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute("PRAGMA busy_timeout=5000")
            await db.execute("PRAGMA foreign_keys=ON")

            await db.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY DEFAULT (lower(hex(randomblob(16)))),
                    email TEXT UNIQUE NOT NULL COLLATE NOCASE,
                    name TEXT,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL DEFAULT (datetime('now'))
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY DEFAULT (lower(hex(randomblob(16)))),
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    token_hash TEXT UNIQUE NOT NULL,
                    expires_at TEXT NOT NULL,
                    created_at TEXT NOT NULL DEFAULT (datetime('now'))
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS provider_configs (
                    id TEXT PRIMARY KEY DEFAULT (lower(hex(randomblob(16)))),
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    provider_name TEXT NOT NULL,
                    display_name TEXT,
                    encrypted_api_key TEXT,
                    api_key_iv TEXT,
                    api_key_auth_tag TEXT,
                    encrypted_endpoint TEXT,
                    endpoint_iv TEXT,
                    endpoint_auth_tag TEXT,
                    is_enabled INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL DEFAULT (datetime('now')),
                    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
                    last_used_at TEXT,
                    UNIQUE(user_id, provider_name)
                )
            """)

            await db.execute("CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id)")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_provider_configs_user ON provider_configs(user_id)")
            await db.commit()

    # --- Users ---

    async def create_user(self, email: str, password_hash: str, name: Optional[str] = None) -> dict:
        """Create a user and return {id, email, name}."""
        user_id = uuid.uuid4().hex
        return await self.execute_returning_row(
            [(
                "INSERT INTO users (id, email, name, password_hash) VALUES (?, ?, ?, ?)",
                (user_id, email, name, password_hash),
            )],
            "SELECT id, email, name, created_at FROM users WHERE id = ?",
            (user_id,),
        )

    async def get_user_by_email(self, email: str) -> dict | None:
        return await self.fetch_one("SELECT * FROM users WHERE email = ?", (email,))

    async def get_user_by_id(self, user_id: str) -> dict | None:
        return await self.fetch_one(
            "SELECT id, email, name, created_at FROM users WHERE id = ?", (user_id,)
        )

    # --- Sessions (only the token hash is stored) ---

    async def create_session(self, user_id: str, token_hash: str, max_age_days: int) -> None:
        await self.execute(
            "INSERT INTO sessions (id, user_id, token_hash, expires_at) "
            "VALUES (?, ?, ?, datetime('now', ?))",
            (uuid.uuid4().hex, user_id, token_hash, f"+{int(max_age_days)} days"),
        )

    async def get_session_user(self, token_hash: str) -> dict | None:
        """Return the user owning a live session, or None if unknown/expired."""
        return await self.fetch_one(
            "SELECT u.id, u.email, u.name FROM sessions s JOIN users u ON u.id = s.user_id "
            "WHERE s.token_hash = ? AND s.expires_at > datetime('now')",
            (token_hash,),
        )

    async def delete_session(self, token_hash: str) -> bool:
        count = await self.execute_returning_rowcount(
            "DELETE FROM sessions WHERE token_hash = ?", (token_hash,)
        )
        return count > 0

    async def cleanup_expired_sessions(self) -> int:
        """Remove expired sessions. Returns count deleted."""
        return await self.execute_returning_rowcount(
            "DELETE FROM sessions WHERE expires_at <= datetime('now')"
        )

    # --- Provider configs CRUD ---

    async def get_provider_config(self, user_id: str, provider_name: str) -> dict | None:
        """Return the full row (encrypted fields included) for user+provider, or None."""
        return await self.fetch_one(
            "SELECT * FROM provider_configs WHERE user_id = ? AND provider_name = ?",
            (user_id, provider_name),
        )

    async def get_provider_config_by_id(self, user_id: str, config_id: str) -> dict | None:
        return await self.fetch_one(
            "SELECT * FROM provider_configs WHERE id = ? AND user_id = ?",
            (config_id, user_id),
        )

    async def upsert_provider_config(
        self,
        user_id: str,
        provider_name: str,
        *,
        api_key: Optional[EncryptedSecret] = None,
        endpoint: Optional[EncryptedSecret] = None,
        display_name: Optional[str] = None,
    ) -> dict:
        """Insert or update a user's config for a provider. Returns the stored row.

        Fields passed as None are left untouched on update, so saving only an
        endpoint keeps a previously stored API key.
        """
        config_id = uuid.uuid4().hex
        return await self.execute_returning_row(
            [(
                """
                INSERT INTO provider_configs (
                    id, user_id, provider_name, display_name,
                    encrypted_api_key, api_key_iv, api_key_auth_tag,
                    encrypted_endpoint, endpoint_iv, endpoint_auth_tag
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, provider_name) DO UPDATE SET
                    display_name = COALESCE(excluded.display_name, provider_configs.display_name),
                    encrypted_api_key = COALESCE(excluded.encrypted_api_key, provider_configs.encrypted_api_key),
                    api_key_iv = COALESCE(excluded.api_key_iv, provider_configs.api_key_iv),
                    api_key_auth_tag = COALESCE(excluded.api_key_auth_tag, provider_configs.api_key_auth_tag),
                    encrypted_endpoint = COALESCE(excluded.encrypted_endpoint, provider_configs.encrypted_endpoint),
                    endpoint_iv = COALESCE(excluded.endpoint_iv, provider_configs.endpoint_iv),
                    endpoint_auth_tag = COALESCE(excluded.endpoint_auth_tag, provider_configs.endpoint_auth_tag),
                    updated_at = datetime('now')
                """,
                (
                    config_id, user_id, provider_name, display_name,
                    api_key.ciphertext if api_key else None,
                    api_key.iv if api_key else None,
                    api_key.auth_tag if api_key else None,
                    endpoint.ciphertext if endpoint else None,
                    endpoint.iv if endpoint else None,
                    endpoint.auth_tag if endpoint else None,
                ),
            )],
            "SELECT * FROM provider_configs WHERE user_id = ? AND provider_name = ?",
            (user_id, provider_name),
        )

    async def set_provider_config_enabled(self, user_id: str, config_id: str, enabled: bool) -> bool:
        """Enable/disable a config owned by user_id. Returns True if a row changed."""
        count = await self.execute_returning_rowcount(
            "UPDATE provider_configs SET is_enabled = ?, updated_at = datetime('now') "
            "WHERE id = ? AND user_id = ?",
            (1 if enabled else 0, config_id, user_id),
        )
        return count > 0

    async def delete_provider_config(self, user_id: str, config_id: str) -> bool:
        """Delete a config owned by user_id. Returns True if deleted."""
        count = await self.execute_returning_rowcount(
            "DELETE FROM provider_configs WHERE id = ? AND user_id = ?",
            (config_id, user_id),
        )
        return count > 0

    async def list_provider_configs(self, user_id: str) -> list[dict]:
        """All configs for a user, newest first (encrypted fields included)."""
        return await self.fetch_all(
            "SELECT * FROM provider_configs WHERE user_id = ? ORDER BY created_at DESC, provider_name",
            (user_id,),
        )

    async def touch_provider_config(self, config_id: str) -> None:
        await self.execute(
            "UPDATE provider_configs SET last_used_at = datetime('now') WHERE id = ?",
            (config_id,),
        )

    # --- Key rotation ---

    async def all_provider_configs(self) -> list[dict]:
        return await self.fetch_all("SELECT * FROM provider_configs ORDER BY id")

    async def replace_provider_config_secrets(
        self,
        config_id: str,
        api_key: Optional[EncryptedSecret],
        endpoint: Optional[EncryptedSecret],
    ) -> None:
        """Overwrite both encrypted fields of a config (None clears a field)."""
        await self.execute(
            "UPDATE provider_configs SET "
            "encrypted_api_key = ?, api_key_iv = ?, api_key_auth_tag = ?, "
            "encrypted_endpoint = ?, endpoint_iv = ?, endpoint_auth_tag = ?, "
            "updated_at = datetime('now') WHERE id = ?",
            (
                api_key.ciphertext if api_key else None,
                api_key.iv if api_key else None,
                api_key.auth_tag if api_key else None,
                endpoint.ciphertext if endpoint else None,
                endpoint.iv if endpoint else None,
                endpoint.auth_tag if endpoint else None,
                config_id,
            ),
        )


def api_key_secret(row: dict) -> Optional[EncryptedSecret]:
    """EncryptedSecret for a row's API key, or None if no key is stored."""
    if not row.get("encrypted_api_key"):
        return None
    return EncryptedSecret(
        ciphertext=row["encrypted_api_key"],
        iv=row.get("api_key_iv") or "",
        auth_tag=row.get("api_key_auth_tag") or "",
    )


def endpoint_secret(row: dict) -> Optional[EncryptedSecret]:
    """EncryptedSecret for a row's endpoint, or None if no endpoint is stored."""
    if not row.get("encrypted_endpoint"):
        return None
    return EncryptedSecret(
        ciphertext=row["encrypted_endpoint"],
        iv=row.get("endpoint_iv") or "",
        auth_tag=row.get("endpoint_auth_tag") or "",
    )
