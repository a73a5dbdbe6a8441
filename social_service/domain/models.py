"""
Domain models - Core business entities
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from enum import Enum


class RequestStatus(str, Enum):
    """Follow request status"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


@dataclass
class User:
    """User domain model"""
    id: int
    name: str
    username: str
    email: str
    bio: Optional[str] = None
    profile_photo: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_owner(self, user_id: Optional[int]) -> bool:
        """Check if the given user_id is the owner of this profile"""
        return user_id is not None and self.id == user_id


@dataclass
class FollowEdge:
    """Approved, directed follow relationship"""
    follower_id: int
    followee_id: int
    created_at: Optional[datetime] = None


@dataclass
class FollowRequest:
    """Follow intent awaiting the target's decision"""
    id: int
    from_user_id: int
    to_user_id: int
    status: RequestStatus = RequestStatus.PENDING
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING


@dataclass
class Message:
    """Directed text message between two users"""
    id: int
    from_user_id: int
    to_user_id: int
    text: str
    created_at: datetime
    read_at: Optional[datetime] = None

    def is_unread(self) -> bool:
        return self.read_at is None

    def counterpart_of(self, user_id: int) -> int:
        """The other participant, seen from user_id"""
        return self.to_user_id if self.from_user_id == user_id else self.from_user_id


@dataclass
class ConversationSummary:
    """Derived view of the messages exchanged with one counterpart"""
    counterpart_id: int
    last_message: Message
    unread_count: int = 0
