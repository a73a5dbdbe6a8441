"""
In-process repository implementations

Used for local development (STORAGE_BACKEND=memory) and the test suite. All
state lives in plain dicts; mutations that must be atomic run under an
asyncio.Lock, as the PostgreSQL backend uses advisory locks.
"""
import asyncio
import itertools
import weakref
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple

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
from .postgres import UPDATABLE_USER_FIELDS


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryUserRepository(IUserRepository):

    def __init__(self):
        self._users: Dict[int, User] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    def _check_unique(self, user_id: Optional[int], username: str, email: Optional[str]):
        for user in self._users.values():
            if user.id == user_id:
                continue
            if user.username == username:
                raise Conflict("Username already taken")
            if email is not None and user.email.lower() == email.lower():
                raise Conflict("Email already registered")

    async def create(self, name: str, username: str, email: str,
                     bio: Optional[str] = None,
                     profile_photo: Optional[str] = None) -> User:
        async with self._lock:
            self._check_unique(None, username, email)
            user = User(
                id=next(self._ids),
                name=name,
                username=username,
                email=email,
                bio=bio,
                profile_photo=profile_photo,
                created_at=_utcnow(),
            )
            self._users[user.id] = user
            return replace(user)

    async def find_by_id(self, user_id: int) -> Optional[User]:
        user = self._users.get(user_id)
        return replace(user) if user else None

    async def find_by_ids(self, user_ids: Iterable[int]) -> Dict[int, User]:
        return {
            user_id: replace(self._users[user_id])
            for user_id in set(user_ids)
            if user_id in self._users
        }

    async def update(self, user_id: int, updates: Dict[str, Any]) -> User:
        async with self._lock:
            user = self._users[user_id]
            changes = {k: v for k, v in updates.items() if k in UPDATABLE_USER_FIELDS}
            if not changes:
                return replace(user)
            if "username" in changes:
                self._check_unique(user_id, changes["username"], None)
            updated = replace(user, updated_at=_utcnow(), **changes)
            self._users[user_id] = updated
            return replace(updated)


class InMemoryFollowPairTransaction(IFollowPairTransaction):

    def __init__(self, repo: "InMemoryFollowRepository", follower_id: int, followee_id: int):
        self.repo = repo
        self.follower_id = follower_id
        self.followee_id = followee_id

    @property
    def _key(self) -> Tuple[int, int]:
        return (self.follower_id, self.followee_id)

    async def relation(self) -> RelationState:
        return self.repo._relation(self.follower_id, self.followee_id)

    async def pending_request(self) -> Optional[FollowRequest]:
        request = self.repo._pending_for_pair(self.follower_id, self.followee_id)
        return replace(request) if request else None

    async def create_request(self) -> FollowRequest:
        if self.repo._pending_for_pair(self.follower_id, self.followee_id):
            raise AlreadyRequested()
        request = FollowRequest(
            id=next(self.repo._request_ids),
            from_user_id=self.follower_id,
            to_user_id=self.followee_id,
            status=RequestStatus.PENDING,
            created_at=_utcnow(),
        )
        self.repo._requests[request.id] = request
        return replace(request)

    async def delete_request(self, request_id: int) -> None:
        request = self.repo._requests.get(request_id)
        if request and request.is_pending():
            del self.repo._requests[request_id]

    async def resolve_request(self, request_id: int, status: RequestStatus) -> FollowRequest:
        request = self.repo._requests.get(request_id)
        if not request or not request.is_pending():
            return None
        resolved = replace(request, status=status, resolved_at=_utcnow())
        self.repo._requests[request_id] = resolved
        return replace(resolved)

    async def create_edge(self) -> FollowEdge:
        edge = self.repo._edges.get(self._key)
        if edge is None:
            edge = FollowEdge(
                follower_id=self.follower_id,
                followee_id=self.followee_id,
                created_at=_utcnow(),
            )
            edge_seq = next(self.repo._edge_seq)
            self.repo._edges[self._key] = edge
            self.repo._edge_order[self._key] = edge_seq
        return replace(edge)

    async def delete_edge(self) -> None:
        self.repo._edges.pop(self._key, None)
        self.repo._edge_order.pop(self._key, None)


class InMemoryFollowRepository(IFollowRepository):

    def __init__(self):
        self._edges: Dict[Tuple[int, int], FollowEdge] = {}
        # Insertion sequence breaks created_at ties so "most recent first" is stable
        self._edge_order: Dict[Tuple[int, int], int] = {}
        self._edge_seq = itertools.count(1)
        self._requests: Dict[int, FollowRequest] = {}
        self._request_ids = itertools.count(1)
        # A pair lock lives only while a transaction holds or awaits it
        self._locks: "weakref.WeakValueDictionary[Tuple[int, int], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _pending_for_pair(self, follower_id: int, followee_id: int) -> Optional[FollowRequest]:
        for request in self._requests.values():
            if (
                request.from_user_id == follower_id
                and request.to_user_id == followee_id
                and request.is_pending()
            ):
                return request
        return None

    def _relation(self, follower_id: int, followee_id: int) -> RelationState:
        return RelationState.from_flags(
            (follower_id, followee_id) in self._edges,
            self._pending_for_pair(follower_id, followee_id) is not None,
        )

    def _pair_lock(self, key: Tuple[int, int]) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def pair(self, follower_id: int, followee_id: int) -> AsyncIterator[InMemoryFollowPairTransaction]:
        async with self._pair_lock((follower_id, followee_id)):
            yield InMemoryFollowPairTransaction(self, follower_id, followee_id)

    async def get_relation(self, follower_id: int, followee_id: int) -> RelationState:
        return self._relation(follower_id, followee_id)

    async def find_request(self, request_id: int) -> Optional[FollowRequest]:
        request = self._requests.get(request_id)
        return replace(request) if request else None

    async def list_pending_requests(self, to_user_id: int) -> List[FollowRequest]:
        pending = [
            replace(r) for r in self._requests.values()
            if r.to_user_id == to_user_id and r.is_pending()
        ]
        return sorted(pending, key=lambda r: r.id, reverse=True)

    def _sorted_edges(self, keys: List[Tuple[int, int]]) -> List[FollowEdge]:
        keys.sort(key=lambda k: self._edge_order[k], reverse=True)
        return [replace(self._edges[k]) for k in keys]

    async def list_followers(self, user_id: int) -> List[FollowEdge]:
        return self._sorted_edges([k for k in self._edges if k[1] == user_id])

    async def list_following(self, user_id: int) -> List[FollowEdge]:
        return self._sorted_edges([k for k in self._edges if k[0] == user_id])

    async def count_followers(self, user_id: int) -> int:
        return sum(1 for k in self._edges if k[1] == user_id)

    async def count_following(self, user_id: int) -> int:
        return sum(1 for k in self._edges if k[0] == user_id)


class InMemoryMessageRepository(IMessageRepository):

    def __init__(self):
        self._messages: Dict[int, Message] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def create(self, from_user_id: int, to_user_id: int, text: str) -> Message:
        async with self._lock:
            message = Message(
                id=next(self._ids),
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                text=text,
                created_at=_utcnow(),
            )
            self._messages[message.id] = message
            return replace(message)

    async def list_between(self, user_id: int, other_user_id: int) -> List[Message]:
        pair = {user_id, other_user_id}
        # ids grow monotonically, so id order is chronological order
        return [
            replace(m) for m in sorted(self._messages.values(), key=lambda m: m.id)
            if {m.from_user_id, m.to_user_id} == pair
        ]

    async def mark_read(self, viewer_id: int, counterpart_id: int, read_at: datetime) -> int:
        async with self._lock:
            updated = 0
            for message_id, message in self._messages.items():
                if (
                    message.to_user_id == viewer_id
                    and message.from_user_id == counterpart_id
                    and message.is_unread()
                ):
                    self._messages[message_id] = replace(message, read_at=read_at)
                    updated += 1
            return updated

    async def list_conversations(self, viewer_id: int) -> List[ConversationSummary]:
        summaries: Dict[int, ConversationSummary] = {}
        for message in sorted(self._messages.values(), key=lambda m: m.id):
            if viewer_id not in (message.from_user_id, message.to_user_id):
                continue
            counterpart_id = message.counterpart_of(viewer_id)
            summary = summaries.get(counterpart_id)
            if summary is None:
                summary = summaries[counterpart_id] = ConversationSummary(
                    counterpart_id=counterpart_id, last_message=message
                )
            summary.last_message = replace(message)
            if message.to_user_id == viewer_id and message.is_unread():
                summary.unread_count += 1
        return sorted(summaries.values(), key=lambda s: s.last_message.id, reverse=True)

    async def count_unread(self, viewer_id: int) -> int:
        return sum(
            1 for m in self._messages.values()
            if m.to_user_id == viewer_id and m.is_unread()
        )
