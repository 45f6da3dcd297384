"""SQLite storage for users, refresh tokens and videos."""

from __future__ import annotations

import sqlite3
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Union

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        password TEXT NOT NULL,
        email TEXT UNIQUE NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS refresh_tokens (
        token TEXT PRIMARY KEY,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        revoked_at TIMESTAMP,
        user_id TEXT NOT NULL,
        expires_at TIMESTAMP NOT NULL,
        FOREIGN KEY(user_id) REFERENCES users(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS videos (
        id TEXT PRIMARY KEY,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        title TEXT NOT NULL,
        description TEXT,
        thumbnail_url TEXT,
        video_url TEXT TEXT,
        user_id INTEGER,
        FOREIGN KEY(user_id) REFERENCES users(id)
    )
    """,
)

_VIDEO_COLUMNS = (
    "id, created_at, updated_at, title, description, thumbnail_url, video_url, user_id"
)

UUIDLike = Union[uuid.UUID, str]


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _store_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _json_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    text = value.astimezone(timezone.utc).isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _as_uuid(value: UUIDLike) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


@dataclass
class User:
    """A registered account."""

    id: uuid.UUID
    email: str
    password: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "created_at": _json_time(self.created_at),
            "updated_at": _json_time(self.updated_at),
            "email": self.email,
            "password": self.password,
        }


@dataclass
class Video:
    """Metadata for an uploaded video."""

    id: uuid.UUID
    title: str
    description: str
    user_id: uuid.UUID
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    thumbnail_url: Optional[str] = None
    video_url: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "created_at": _json_time(self.created_at),
            "updated_at": _json_time(self.updated_at),
            "thumbnail_url": self.thumbnail_url,
            "video_url": self.video_url,
            "title": self.title,
            "description": self.description,
            "user_id": str(self.user_id),
        }


@dataclass
class RefreshToken:
    """A long-lived token that can be exchanged for access tokens."""

    token: str
    user_id: uuid.UUID
    expires_at: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "user_id": str(self.user_id),
            "expires_at": _json_time(self.expires_at),
            "created_at": _json_time(self.created_at),
            "updated_at": _json_time(self.updated_at),
            "revoked_at": _json_time(self.revoked_at),
        }


class Database:
    """Thread-safe access to the application's SQLite database."""

    def __init__(self, path: str) -> None:
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(path), check_same_thread=False, isolation_level=None)
        with self._lock:
            for statement in _SCHEMA:
                self._conn.execute(statement)

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _execute(self, query: str, params: Iterable[Any] = ()) -> None:
        with self._lock:
            self._conn.execute(query, tuple(params))

    def _one(self, query: str, params: Iterable[Any] = ()) -> Optional[tuple]:
        with self._lock:
            return self._conn.execute(query, tuple(params)).fetchone()

    def _all(self, query: str, params: Iterable[Any] = ()) -> list:
        with self._lock:
            return self._conn.execute(query, tuple(params)).fetchall()

    def reset(self) -> None:
        """Delete every row from every table."""
        for table in ("refresh_tokens", "users", "videos"):
            try:
                self._execute(f"DELETE FROM {table}")
            except sqlite3.Error as exc:
                raise sqlite3.DatabaseError(f"failed to reset table {table}: {exc}") from exc

    # Users

    @staticmethod
    def _user_from_row(row: tuple) -> User:
        user_id, created_at, updated_at, email, password = row
        return User(
            id=_as_uuid(user_id),
            email=email,
            password=password,
            created_at=_parse_time(created_at),
            updated_at=_parse_time(updated_at),
        )

    def create_user(self, email: str, password: str) -> Optional[User]:
        user_id = uuid.uuid4()
        self._execute(
            "INSERT INTO users (id, created_at, updated_at, email, password) "
            "VALUES (?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP, ?, ?)",
            (str(user_id), email, password),
        )
        return self.get_user(user_id)

    def get_user(self, user_id: UUIDLike) -> Optional[User]:
        row = self._one(
            "SELECT id, created_at, updated_at, email, password FROM users WHERE id = ?",
            (str(_as_uuid(user_id)),),
        )
        return self._user_from_row(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        row = self._one(
            "SELECT id, created_at, updated_at, email, password FROM users WHERE email = ?",
            (email,),
        )
        return self._user_from_row(row) if row else None

    def get_user_by_refresh_token(self, token: str) -> Optional[User]:
        row = self._one(
            "SELECT u.id, u.created_at, u.updated_at, u.email, u.password "
            "FROM users u JOIN refresh_tokens rt ON u.id = rt.user_id "
            "WHERE rt.token = ?",
            (token,),
        )
        return self._user_from_row(row) if row else None

    def get_users(self) -> list[User]:
        """Return every user with only the id and e-mail filled in."""
        rows = self._all("SELECT id, email FROM users")
        return [User(id=_as_uuid(user_id), email=email) for user_id, email in rows]

    def delete_user(self, user_id: UUIDLike) -> None:
        self._execute("DELETE FROM users WHERE id = ?", (str(_as_uuid(user_id)),))

    # Refresh tokens

    def create_refresh_token(
        self, token: str, user_id: UUIDLike, expires_at: datetime
    ) -> Optional[RefreshToken]:
        self._execute(
            "INSERT INTO refresh_tokens (token, created_at, updated_at, user_id, expires_at) "
            "VALUES (?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP, ?, ?)",
            (token, str(_as_uuid(user_id)), _store_time(expires_at)),
        )
        return self.get_refresh_token(token)

    def get_refresh_token(self, token: str) -> Optional[RefreshToken]:
        row = self._one(
            "SELECT token, created_at, updated_at, user_id, expires_at, revoked_at "
            "FROM refresh_tokens WHERE token = ?",
            (token,),
        )
        if row is None:
            return None
        value, created_at, updated_at, user_id, expires_at, revoked_at = row
        return RefreshToken(
            token=value,
            user_id=_as_uuid(user_id),
            expires_at=_parse_time(expires_at),
            created_at=_parse_time(created_at),
            updated_at=_parse_time(updated_at),
            revoked_at=_parse_time(revoked_at),
        )

    def revoke_refresh_token(self, token: str) -> None:
        self._execute(
            "UPDATE refresh_tokens SET revoked_at = CURRENT_TIMESTAMP WHERE token = ?",
            (token,),
        )

    def delete_refresh_token(self, token: str) -> None:
        self._execute("DELETE FROM refresh_tokens WHERE token = ?", (token,))

    # Videos

    @staticmethod
    def _video_from_row(row: tuple) -> Video:
        (video_id, created_at, updated_at, title, description,
         thumbnail_url, video_url, user_id) = row
        return Video(
            id=_as_uuid(video_id),
            title=title,
            description=description or "",
            user_id=_as_uuid(user_id),
            created_at=_parse_time(created_at),
            updated_at=_parse_time(updated_at),
            thumbnail_url=thumbnail_url,
            video_url=video_url,
        )

    def create_video(self, title: str, description: str, user_id: UUIDLike) -> Optional[Video]:
        video_id = uuid.uuid4()
        self._execute(
            "INSERT INTO videos (id, created_at, updated_at, title, description, user_id) "
            "VALUES (?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP, ?, ?, ?)",
            (str(video_id), title, description, str(_as_uuid(user_id))),
        )
        return self.get_video(video_id)

    def get_video(self, video_id: UUIDLike) -> Optional[Video]:
        row = self._one(
            f"SELECT {_VIDEO_COLUMNS} FROM videos WHERE id = ?",
            (str(_as_uuid(video_id)),),
        )
        return self._video_from_row(row) if row else None

    def get_videos(self, user_id: UUIDLike) -> list[Video]:
        """Return the user's videos, newest first."""
        rows = self._all(
            f"SELECT {_VIDEO_COLUMNS} FROM videos WHERE user_id = ? "
            "ORDER BY created_at DESC, rowid DESC",
            (str(_as_uuid(user_id)),),
        )
        return [self._video_from_row(row) for row in rows]

    def update_video(self, video: Video) -> None:
        self._execute(
            "UPDATE videos SET title = ?, description = ?, thumbnail_url = ?, "
            "video_url = ?, user_id = ? WHERE id = ?",
            (
                video.title,
                video.description,
                video.thumbnail_url,
                video.video_url,
                str(_as_uuid(video.user_id)),
                str(_as_uuid(video.id)),
            ),
        )

    def delete_video(self, video_id: UUIDLike) -> None:
        self._execute("DELETE FROM videos WHERE id = ?", (str(_as_uuid(video_id)),))