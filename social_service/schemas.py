"""
Pydantic schemas for request/response validation

JSON payloads use camelCase keys; Python attributes stay snake_case.
"""
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime

from .domain.models import RequestStatus


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Request Schemas
class UserCreate(CamelModel):
    """Identity registration pushed by the auth service"""

    name: str = Field(..., min_length=1, max_length=100)
    username: str
    email: EmailStr
    bio: Optional[str] = None
    profile_photo: Optional[str] = None


class UpdateProfile(CamelModel):
    """Partial profile update; omitted fields are left unchanged"""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    username: Optional[str] = None
    bio: Optional[str] = None
    profile_photo: Optional[str] = None


class SendMessageRequest(CamelModel):
    to_user_id: int
    text: str


class MarkReadRequest(CamelModel):
    with_user_id: int = Field(..., alias="with")


# Response Schemas
class UserIdentity(CamelModel):
    """Public identity of a user"""

    id: int
    name: str
    username: str
    profile_photo: Optional[str] = None


class UserProfile(UserIdentity):
    """Profile with counts recomputed on read"""

    bio: Optional[str] = None
    email: Optional[str] = None
    follower_count: int = 0
    following_count: int = 0
    created_at: Optional[datetime] = None


class FollowStatusResponse(CamelModel):
    following: bool
    requested: bool


class FollowRequestItem(CamelModel):
    """Pending request as shown to its target"""

    id: int
    from_user: UserIdentity
    created_at: Optional[datetime] = None


class ResolvedFollowRequest(CamelModel):
    """Request after accept or decline"""

    id: int
    from_user: UserIdentity
    to_user_id: int
    status: RequestStatus
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class MessageOut(CamelModel):
    id: int
    from_user_id: int
    to_user_id: int
    text: str
    created_at: datetime
    read_at: Optional[datetime] = None
    is_me: bool


class LastMessage(CamelModel):
    id: int
    text: str
    created_at: datetime
    is_me: bool


class ConversationItem(UserIdentity):
    """Conversation summary keyed by the counterpart's identity"""

    last_message: LastMessage
    unread_count: int


class MarkReadResponse(CamelModel):
    success: bool = True
    updated: int


class UnreadCountResponse(CamelModel):
    count: int


class ErrorResponse(CamelModel):
    """Error body; the client shows `error` verbatim"""

    error: str
    code: str


class HealthResponse(CamelModel):
    status: str
    service: str
    version: str


# Internal Models
class CurrentUser(CamelModel):
    """Authenticated principal, passed explicitly to services"""

    id: int
    username: str
