"""
Repository implementations - PostgreSQL data access layer
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional
import logging

import asyncpg

from ..database import Database
from ..domain.models import (
    ConversationSummary,
    FollowEdge,
    FollowRequest,
    Message,
    RequestStatus,
    User,
)
from ..domain.relations import RelationState
from ..domain.repositories import (
    IFollowPairTransaction,
    IFollowRepository,
    IMessageRepository,
    IUserRepository,
)
from ..exceptions import AlreadyRequested, Conflict

logger = logging.getLogger(__name__)

USER_COLUMNS = "id, name, username, email, bio, profile_photo, created_at, updated_at"
REQUEST_COLUMNS = "id, from_user_id, to_user_id, status, created_at, resolved_at"
MESSAGE_COLUMNS = "id, from_user_id, to_user_id, text, created_at, read_at"

# Profile fields a caller may change through update()
UPDATABLE_USER_FIELDS = ("name", "username", "bio", "profile_photo")

RELATION_QUERY = """
    SELECT
        EXISTS(SELECT 1 FROM follows WHERE follower_id = $1 AND followee_id = $2) AS following,
        EXISTS(
            SELECT 1 FROM follow_requests
            WHERE from_user_id = $1 AND to_user_id = $2 AND status = 'pending'
        ) AS requested
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_request(row: Optional[Dict[str, Any]]) -> Optional[FollowRequest]:
    if not row:
        return None
    data = dict(row)
    data["status"] = RequestStatus(data["status"])
    return FollowRequest(**data)


def _row_to_message(row: Optional[Dict[str, Any]]) -> Optional[Message]:
    if not row:
        return None
    return Message(**dict(row))


def _unique_violation_detail(error: asyncpg.UniqueViolationError) -> str:
    constraint = getattr(error, "constraint_name", "") or ""
    if "email" in constraint:
        return "Email already registered"
    return "Username already taken"


class UserRepository(IUserRepository):
    """User repository implementation using PostgreSQL"""

    def __init__(self, db: Database):
        self.db = db

    def _row_to_user(self, row: Optional[Dict[str, Any]]) -> Optional[User]:
        """Convert database row to User model"""
        if not row:
            return None
        return User(**dict(row))

    async def create(self, name: str, username: str, email: str,
                     bio: Optional[str] = None,
                     profile_photo: Optional[str] = None) -> User:
        """Create a new user"""
        try:
            row = await self.db.fetch_one(
                f"""
                INSERT INTO users (name, username, email, bio, profile_photo)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING {USER_COLUMNS}
                """,
                name,
                username,
                email,
                bio,
                profile_photo,
            )
        except asyncpg.UniqueViolationError as e:
            raise Conflict(_unique_violation_detail(e))
        return self._row_to_user(row)

    async def find_by_id(self, user_id: int) -> Optional[User]:
        """Find user by ID"""
        row = await self.db.fetch_one(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = $1", user_id
        )
        return self._row_to_user(row)

    async def find_by_ids(self, user_ids: Iterable[int]) -> Dict[int, User]:
        """Find several users at once"""
        ids = list(set(user_ids))
        if not ids:
            return {}
        rows = await self.db.fetch_all(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = ANY($1::int[])", ids
        )
        return {row["id"]: self._row_to_user(row) for row in rows}

    async def update(self, user_id: int, updates: Dict[str, Any]) -> User:
        """Update user information"""
        # Build update query dynamically
        assignments = []
        values = []
        for field in UPDATABLE_USER_FIELDS:
            if field in updates:
                values.append(updates[field])
                assignments.append(f"{field} = ${len(values)}")

        if not assignments:
            return await self.find_by_id(user_id)

        values.append(_utcnow())
        assignments.append(f"updated_at = ${len(values)}")
        values.append(user_id)

        try:
            row = await self.db.fetch_one(
                f"""
                UPDATE users SET {", ".join(assignments)}
                WHERE id = ${len(values)}
                RETURNING {USER_COLUMNS}
                """,
                *values,
            )
        except asyncpg.UniqueViolationError as e:
            raise Conflict(_unique_violation_detail(e))
        return self._row_to_user(row)


class FollowPairTransaction(IFollowPairTransaction):
    """Pair unit of work bound to one connection and transaction"""

    def __init__(self, conn: asyncpg.Connection, follower_id: int, followee_id: int):
        self.conn = conn
        self.follower_id = follower_id
        self.followee_id = followee_id

    async def relation(self) -> RelationState:
        row = await self.conn.fetchrow(RELATION_QUERY, self.follower_id, self.followee_id)
        return RelationState.from_flags(row["following"], row["requested"])

    async def pending_request(self) -> Optional[FollowRequest]:
        row = await self.conn.fetchrow(
            f"""
            SELECT {REQUEST_COLUMNS} FROM follow_requests
            WHERE from_user_id = $1 AND to_user_id = $2 AND status = 'pending'
            FOR UPDATE
            """,
            self.follower_id,
            self.followee_id,
        )
        return _row_to_request(row)

    async def create_request(self) -> FollowRequest:
        # The partial unique index is the last line of defence against a
        # second pending request for the pair.
        row = await self.conn.fetchrow(
            f"""
            INSERT INTO follow_requests (from_user_id, to_user_id, status, created_at)
            VALUES ($1, $2, 'pending', $3)
            ON CONFLICT (from_user_id, to_user_id) WHERE status = 'pending' DO NOTHING
            RETURNING {REQUEST_COLUMNS}
            """,
            self.follower_id,
            self.followee_id,
            _utcnow(),
        )
        if row is None:
            raise AlreadyRequested()
        return _row_to_request(row)

    async def delete_request(self, request_id: int) -> None:
        await self.conn.execute(
            "DELETE FROM follow_requests WHERE id = $1 AND status = 'pending'", request_id
        )

    async def resolve_request(self, request_id: int, status: RequestStatus) -> FollowRequest:
        row = await self.conn.fetchrow(
            f"""
            UPDATE follow_requests SET status = $2, resolved_at = $3
            WHERE id = $1 AND status = 'pending'
            RETURNING {REQUEST_COLUMNS}
            """,
            request_id,
            status.value,
            _utcnow(),
        )
        return _row_to_request(row)

    async def create_edge(self) -> FollowEdge:
        row = await self.conn.fetchrow(
            """
            INSERT INTO follows (follower_id, followee_id, created_at)
            VALUES ($1, $2, $3)
            ON CONFLICT (follower_id, followee_id) DO UPDATE SET created_at = follows.created_at
            RETURNING follower_id, followee_id, created_at
            """,
            self.follower_id,
            self.followee_id,
            _utcnow(),
        )
        return FollowEdge(**dict(row))

    async def delete_edge(self) -> None:
        await self.conn.execute(
            "DELETE FROM follows WHERE follower_id = $1 AND followee_id = $2",
            self.follower_id,
            self.followee_id,
        )


class FollowRepository(IFollowRepository):
    """Follow graph repository implementation using PostgreSQL"""

    def __init__(self, db: Database):
        self.db = db

    @asynccontextmanager
    async def pair(self, follower_id: int, followee_id: int) -> AsyncIterator[FollowPairTransaction]:
        async with self.db.transaction() as conn:
            # Serializes follow/unfollow/accept/decline on the same ordered pair
            await conn.execute("SELECT pg_advisory_xact_lock($1, $2)", follower_id, followee_id)
            yield FollowPairTransaction(conn, follower_id, followee_id)

    async def get_relation(self, follower_id: int, followee_id: int) -> RelationState:
        row = await self.db.fetch_one(RELATION_QUERY, follower_id, followee_id)
        return RelationState.from_flags(row["following"], row["requested"])

    async def find_request(self, request_id: int) -> Optional[FollowRequest]:
        row = await self.db.fetch_one(
            f"SELECT {REQUEST_COLUMNS} FROM follow_requests WHERE id = $1", request_id
        )
        return _row_to_request(row)

    async def list_pending_requests(self, to_user_id: int) -> List[FollowRequest]:
        rows = await self.db.fetch_all(
            f"""
            SELECT {REQUEST_COLUMNS} FROM follow_requests
            WHERE to_user_id = $1 AND status = 'pending'
            ORDER BY created_at DESC, id DESC
            """,
            to_user_id,
        )
        return [_row_to_request(row) for row in rows]

    async def list_followers(self, user_id: int) -> List[FollowEdge]:
        rows = await self.db.fetch_all(
            """
            SELECT follower_id, followee_id, created_at FROM follows
            WHERE followee_id = $1
            ORDER BY created_at DESC, follower_id ASC
            """,
            user_id,
        )
        return [FollowEdge(**row) for row in rows]

    async def list_following(self, user_id: int) -> List[FollowEdge]:
        rows = await self.db.fetch_all(
            """
            SELECT follower_id, followee_id, created_at FROM follows
            WHERE follower_id = $1
            ORDER BY created_at DESC, followee_id ASC
            """,
            user_id,
        )
        return [FollowEdge(**row) for row in rows]

    async def count_followers(self, user_id: int) -> int:
        return await self.db.fetch_value(
            "SELECT COUNT(*) FROM follows WHERE followee_id = $1", user_id
        )

    async def count_following(self, user_id: int) -> int:
        return await self.db.fetch_value(
            "SELECT COUNT(*) FROM follows WHERE follower_id = $1", user_id
        )


class MessageRepository(IMessageRepository):
    """Message repository implementation using PostgreSQL"""

    def __init__(self, db: Database):
        self.db = db

    async def create(self, from_user_id: int, to_user_id: int, text: str) -> Message:
        row = await self.db.fetch_one(
            f"""
            INSERT INTO messages (from_user_id, to_user_id, text, created_at)
            VALUES ($1, $2, $3, $4)
            RETURNING {MESSAGE_COLUMNS}
            """,
            from_user_id,
            to_user_id,
            text,
            _utcnow(),
        )
        return _row_to_message(row)

    async def list_between(self, user_id: int, other_user_id: int) -> List[Message]:
        rows = await self.db.fetch_all(
            f"""
            SELECT {MESSAGE_COLUMNS} FROM messages
            WHERE LEAST(from_user_id, to_user_id) = LEAST($1::int, $2::int)
              AND GREATEST(from_user_id, to_user_id) = GREATEST($1::int, $2::int)
            ORDER BY created_at ASC, id ASC
            """,
            user_id,
            other_user_id,
        )
        return [_row_to_message(row) for row in rows]

    async def mark_read(self, viewer_id: int, counterpart_id: int, read_at: datetime) -> int:
        result = await self.db.execute(
            """
            UPDATE messages SET read_at = $3
            WHERE to_user_id = $1 AND from_user_id = $2 AND read_at IS NULL
            """,
            viewer_id,
            counterpart_id,
            read_at,
        )
        # asyncpg returns the command tag, e.g. "UPDATE 3"
        return int(result.split()[-1])

    async def list_conversations(self, viewer_id: int) -> List[ConversationSummary]:
        rows = await self.db.fetch_all(
            f"""
            WITH viewer_messages AS (
                SELECT {MESSAGE_COLUMNS},
                       CASE WHEN from_user_id = $1 THEN to_user_id ELSE from_user_id END
                           AS counterpart_id
                FROM messages
                WHERE from_user_id = $1 OR to_user_id = $1
            ),
            latest AS (
                SELECT DISTINCT ON (counterpart_id) *
                FROM viewer_messages
                ORDER BY counterpart_id, created_at DESC, id DESC
            ),
            unread AS (
                SELECT from_user_id AS counterpart_id, COUNT(*) AS unread_count
                FROM messages
                WHERE to_user_id = $1 AND read_at IS NULL
                GROUP BY from_user_id
            )
            SELECT latest.*, COALESCE(unread.unread_count, 0) AS unread_count
            FROM latest
            LEFT JOIN unread ON unread.counterpart_id = latest.counterpart_id
            ORDER BY latest.created_at DESC, latest.id DESC
            """,
            viewer_id,
        )
        summaries = []
        for row in rows:
            message = Message(
                id=row["id"],
                from_user_id=row["from_user_id"],
                to_user_id=row["to_user_id"],
                text=row["text"],
                created_at=row["created_at"],
                read_at=row["read_at"],
            )
            summaries.append(
                ConversationSummary(
                    counterpart_id=row["counterpart_id"],
                    last_message=message,
                    unread_count=row["unread_count"],
                )
            )
        return summaries

    async def count_unread(self, viewer_id: int) -> int:
        return await self.db.fetch_value(
            "SELECT COUNT(*) FROM messages WHERE to_user_id = $1 AND read_at IS NULL",
            viewer_id,
        )
