"""Server database using SQLAlchemy with SQLite.

This module provides:
- User and subscription management
- Token-based authentication
- Synced record storage with server-side last-write-wins
- Highlight aggregation across users
"""

from __future__ import annotations

import hashlib
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from selectly.core.types import SyncResource, now_ms
from selectly.server.models import Base, SyncedRecord, Token, User

if TYPE_CHECKING:
    from sqlalchemy import Engine


def hash_token(token: str) -> str:
    """Hash a token using SHA-256.

    Args:
        token: Raw token string.

    Returns:
        Hex-encoded SHA-256 hash.
    """
    return hashlib.sha256(token.encode()).hexdigest()


def aggregate_id_for(url: str, text: str) -> str:
    """Stable id of the aggregate of one text span on one page."""
    return hashlib.sha256(f"{url}\n{text}".encode()).hexdigest()[:16]


@dataclass
class UpsertResult:
    """Outcome of a batch upsert."""

    synced: list[str] = field(default_factory=list)
    failed: list[tuple[str | None, str]] = field(default_factory=list)


class Database:
    """SQLAlchemy database for users, tokens and synced records.

    Uses SQLite with WAL mode for better concurrency with multiple readers.
    """

    def __init__(self, db_path: Path, clock: Callable[[], int] = now_ms) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
            clock: Source of server_modified_at (epoch milliseconds).
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock

        # Create engine with check_same_thread=False for multi-threaded access
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False},
            echo=False,
        )

        # Enable WAL mode
        with self._engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            conn.exec_driver_sql("PRAGMA foreign_keys=ON")

        # Create tables if they don't exist
        Base.metadata.create_all(self._engine)

    @property
    def path(self) -> Path:
        return self._db_path

    def now(self) -> int:
        """Current server time in epoch milliseconds."""
        return self._clock()

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine)

    # === User operations ===

    def create_user(
        self,
        name: str,
        user_id: str | None = None,
        subscription_active: bool = True,
        period_end: int | None = None,
        plan: str | None = None,
    ) -> User:
        """Create a new user.

        Args:
            name: Display name.
            user_id: Explicit id (default: random UUID).
            subscription_active: Whether cloud sync is paid for.
            period_end: End of the paid period (epoch milliseconds).
            plan: Plan name.

        Returns:
            Created User object.

        Raises:
            IntegrityError: If the id already exists.
        """
        with self._session() as session:
            user = User(
                id=user_id or str(uuid.uuid4()),
                name=name,
                subscription_active=subscription_active,
                period_end=period_end,
                plan=plan,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            session.expunge(user)
            return user

    def get_user(self, user_id: str) -> User | None:
        """Get a user by ID."""
        with self._session() as session:
            user = session.get(User, user_id)
            if user:
                session.expunge(user)
            return user

    def list_users(self) -> list[User]:
        """List all users."""
        with self._session() as session:
            users = list(session.execute(select(User).order_by(User.name)).scalars().all())
            for user in users:
                session.expunge(user)
            return users

    def set_subscription(
        self,
        user_id: str,
        active: bool,
        period_end: int | None = None,
        plan: str | None = None,
    ) -> bool:
        """Update a user's subscription.

        Returns:
            True if the user exists.
        """
        with self._session() as session:
            user = session.get(User, user_id)
            if user is None:
                return False
            user.subscription_active = active
            user.period_end = period_end
            if plan is not None:
                user.plan = plan
            session.commit()
            return True

    def is_subscription_active(self, user: User) -> bool:
        """Check a user's entitlement, treating a past period end as expired."""
        if not user.subscription_active:
            return False
        return user.period_end is None or user.period_end > self.now()

    # === Token operations ===

    def create_token(
        self,
        user_id: str,
        expires_in: timedelta | None = None,
    ) -> tuple[str, Token]:
        """Create a new authentication token.

        Args:
            user_id: User to associate with the token.
            expires_in: Optional expiration duration.

        Returns:
            Tuple of (raw_token, Token object).
        """
        raw_token = "sl_" + secrets.token_urlsafe(32)
        now = datetime.now(UTC)
        expires_at = (now + expires_in) if expires_in else None

        with self._session() as session:
            token = Token(
                user_id=user_id,
                token_hash=hash_token(raw_token),
                created_at=now,
                expires_at=expires_at,
            )
            session.add(token)
            session.commit()
            session.refresh(token)
            session.expunge(token)
            return raw_token, token

    def validate_token(self, raw_token: str) -> Token | None:
        """Validate a token and return it if valid.

        Args:
            raw_token: Raw token string.

        Returns:
            Token if valid, None otherwise.
        """
        token_hash = hash_token(raw_token)
        with self._session() as session:
            stmt = select(Token).where(Token.token_hash == token_hash, Token.revoked == False)  # noqa: E712
            token = session.execute(stmt).scalar_one_or_none()

            if token is None:
                return None

            # Check expiration (handle both naive and aware datetimes)
            if token.expires_at:
                expires_at = token.expires_at
                if expires_at.tzinfo is None:
                    expires_at = expires_at.replace(tzinfo=UTC)
                if expires_at < datetime.now(UTC):
                    return None

            session.expunge(token)
            return token

    def revoke_token(self, token_id: int) -> None:
        """Revoke a token."""
        with self._session() as session:
            token = session.get(Token, token_id)
            if token:
                token.revoked = True
                session.commit()

    # === Record operations ===

    def upsert_records(
        self,
        resource: SyncResource,
        user_id: str,
        items: list[dict[str, Any]],
    ) -> UpsertResult:
        """Store a batch of client items.

        Re-uploading an item is harmless: an incoming item older than the
        stored copy is acknowledged without overwriting it, and a live item
        never replaces a tombstone with the same timestamp.

        Args:
            resource: Resource the items belong to.
            user_id: Uploading user.
            items: Client records.

        Returns:
            Ids stored (or already up to date) and ids rejected with a reason.
        """
        result = UpsertResult()
        now = self.now()

        with self._session() as session:
            for item in items:
                item_id = item.get("id")
                if not item_id or not isinstance(item_id, str):
                    result.failed.append((None, "missing id"))
                    continue

                updated_at = item.get("updated_at")
                if not isinstance(updated_at, int):
                    result.failed.append((item_id, "missing updated_at"))
                    continue

                deleted_at = item.get("deleted_at")
                record = session.get(SyncedRecord, (resource.value, item_id))

                if record is not None:
                    if record.user_id != user_id:
                        result.failed.append((item_id, "forbidden"))
                        continue
                    if record.updated_at > updated_at or (
                        record.updated_at == updated_at
                        and record.deleted_at is not None
                        and deleted_at is None
                    ):
                        result.synced.append(item_id)
                        continue
                else:
                    record = SyncedRecord(resource=resource.value, id=item_id, user_id=user_id)
                    session.add(record)

                payload = {k: v for k, v in item.items() if k != "user_id"}
                record.payload = payload
                record.url = payload.get("url")
                record.updated_at = updated_at
                record.deleted_at = deleted_at if isinstance(deleted_at, int) else None
                record.server_modified_at = now
                result.synced.append(item_id)

            session.commit()
        return result

    def get_records_since(
        self,
        resource: SyncResource,
        user_id: str,
        since: int | None = None,
    ) -> list[SyncedRecord]:
        """Get a user's records written at or after a server time.

        Tombstones are included.
        """
        with self._session() as session:
            stmt = select(SyncedRecord).where(
                SyncedRecord.resource == resource.value,
                SyncedRecord.user_id == user_id,
            )
            if since is not None:
                stmt = stmt.where(SyncedRecord.server_modified_at >= since)
            stmt = stmt.order_by(SyncedRecord.server_modified_at, SyncedRecord.id)
            records = list(session.execute(stmt).scalars().all())
            for record in records:
                session.expunge(record)
            return records

    def aggregate_highlights(self, url: str) -> list[dict[str, Any]]:
        """Count live highlights of each text span on a page across users.

        Returns:
            One aggregate per distinct text, most highlighted first.
        """
        with self._session() as session:
            stmt = select(SyncedRecord).where(
                SyncedRecord.resource == SyncResource.HIGHLIGHTS.value,
                SyncedRecord.url == url,
                SyncedRecord.deleted_at.is_(None),
            )
            records = list(session.execute(stmt).scalars().all())

        groups: dict[str, dict[str, Any]] = {}
        for record in records:
            text = record.payload.get("text") or ""
            group = groups.get(text)
            if group is None:
                group = groups[text] = {"users": set(), "latest": record}
            group["users"].add(record.user_id)
            if record.updated_at > group["latest"].updated_at:
                group["latest"] = record

        aggregates = []
        for text, group in groups.items():
            latest: SyncedRecord = group["latest"]
            aggregates.append(
                {
                    "aggregate_id": aggregate_id_for(url, text),
                    "url": url,
                    "hostname": latest.payload.get("hostname") or "",
                    "title": latest.payload.get("title") or "",
                    "text": text,
                    "anchor": latest.payload.get("anchor"),
                    "count": len(group["users"]),
                    "updated_at": latest.updated_at,
                }
            )
        aggregates.sort(key=lambda agg: (-agg["count"], agg["text"]))
        return aggregates
