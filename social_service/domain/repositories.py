"""
Repository interfaces - Define contracts for data access
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, AsyncContextManager, Dict, Iterable, List, Optional

from .models import (
    ConversationSummary,
    FollowEdge,
    FollowRequest,
    Message,
    RequestStatus,
    User,
)
from .relations import RelationState


class IUserRepository(ABC):
    """User repository interface"""

    @abstractmethod
    async def create(self, name: str, username: str, email: str,
                     bio: Optional[str] = None,
                     profile_photo: Optional[str] = None) -> User:
        """Create a new user, raising Conflict on duplicate username or email"""
        pass

    @abstractmethod
    async def find_by_id(self, user_id: int) -> Optional[User]:
        """Find user by ID"""
        pass

    @abstractmethod
    async def find_by_ids(self, user_ids: Iterable[int]) -> Dict[int, User]:
        """Find several users at once, keyed by ID"""
        pass

    @abstractmethod
    async def update(self, user_id: int, updates: Dict[str, Any]) -> User:
        """Update user fields, raising Conflict on duplicate username"""
        pass


class IFollowPairTransaction(ABC):
    """
    Unit of work on one ordered pair (follower -> followee)

    Obtained from IFollowRepository.pair(); every method runs inside the same
    transaction, which holds the pair's lock until the context exits.
    """

    follower_id: int
    followee_id: int

    @abstractmethod
    async def relation(self) -> RelationState:
        pass

    @abstractmethod
    async def pending_request(self) -> Optional[FollowRequest]:
        pass

    @abstractmethod
    async def create_request(self) -> FollowRequest:
        pass

    @abstractmethod
    async def delete_request(self, request_id: int) -> None:
        pass

    @abstractmethod
    async def resolve_request(self, request_id: int, status: RequestStatus) -> FollowRequest:
        pass

    @abstractmethod
    async def create_edge(self) -> FollowEdge:
        pass

    @abstractmethod
    async def delete_edge(self) -> None:
        pass


class IFollowRepository(ABC):
    """Follow graph repository interface"""

    @abstractmethod
    def pair(self, follower_id: int, followee_id: int) -> AsyncContextManager[IFollowPairTransaction]:
        """Open a serialized transaction on one ordered pair"""
        pass

    @abstractmethod
    async def get_relation(self, follower_id: int, followee_id: int) -> RelationState:
        """Read the current relation without locking"""
        pass

    @abstractmethod
    async def find_request(self, request_id: int) -> Optional[FollowRequest]:
        pass

    @abstractmethod
    async def list_pending_requests(self, to_user_id: int) -> List[FollowRequest]:
        """Pending requests targeting a user, newest first"""
        pass

    @abstractmethod
    async def list_followers(self, user_id: int) -> List[FollowEdge]:
        """Edges into user, most recent first"""
        pass

    @abstractmethod
    async def list_following(self, user_id: int) -> List[FollowEdge]:
        """Edges out of user, most recent first"""
        pass

    @abstractmethod
    async def count_followers(self, user_id: int) -> int:
        pass

    @abstractmethod
    async def count_following(self, user_id: int) -> int:
        pass


class IMessageRepository(ABC):
    """Message repository interface"""

    @abstractmethod
    async def create(self, from_user_id: int, to_user_id: int, text: str) -> Message:
        pass

    @abstractmethod
    async def list_between(self, user_id: int, other_user_id: int) -> List[Message]:
        """Messages between two users, oldest first"""
        pass

    @abstractmethod
    async def mark_read(self, viewer_id: int, counterpart_id: int, read_at: datetime) -> int:
        """Stamp unread messages from counterpart to viewer, returning how many changed"""
        pass

    @abstractmethod
    async def list_conversations(self, viewer_id: int) -> List[ConversationSummary]:
        """One summary per counterpart, most recent conversation first"""
        pass

    @abstractmethod
    async def count_unread(self, viewer_id: int) -> int:
        pass
