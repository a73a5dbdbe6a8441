"""
Application services - Business logic layer
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional
import logging
import re

from ..cache import RedisCache
from ..config import settings
from ..domain.models import FollowRequest, Message, RequestStatus, User
from ..domain.relations import RelationAction, RelationState, transition
from ..domain.repositories import IFollowRepository, IMessageRepository, IUserRepository
from ..exceptions import InvalidOperation, NotFound, ValidationError
from ..kafka_producer import KafkaProducerManager
from ..schemas import (
    ConversationItem,
    FollowRequestItem,
    FollowStatusResponse,
    LastMessage,
    MarkReadResponse,
    MessageOut,
    ResolvedFollowRequest,
    UnreadCountResponse,
    UpdateProfile,
    UserCreate,
    UserIdentity,
    UserProfile,
)

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-z0-9_.]+$")


def to_identity(user: User) -> UserIdentity:
    return UserIdentity(
        id=user.id,
        name=user.name,
        username=user.username,
        profile_photo=user.profile_photo,
    )


def status_response(state: RelationState) -> FollowStatusResponse:
    return FollowStatusResponse(following=state.following, requested=state.requested)


async def resolve_identities(users: IUserRepository, user_ids: Iterable[int]) -> Dict[int, UserIdentity]:
    """Map user IDs to public identities, skipping unknown IDs"""
    found = await users.find_by_ids(user_ids)
    return {user_id: to_identity(user) for user_id, user in found.items()}


async def require_user(users: IUserRepository, user_id: int) -> User:
    user = await users.find_by_id(user_id)
    if not user:
        raise NotFound("User not found")
    return user


class UserService:
    """Identity store - user records and public profiles"""

    def __init__(self, user_repository: IUserRepository, follow_repository: IFollowRepository):
        self.user_repo = user_repository
        self.follow_repo = follow_repository

    def _normalize_username(self, username: str) -> str:
        username = username.strip().lower()
        if not (settings.MIN_USERNAME_LENGTH <= len(username) <= settings.MAX_USERNAME_LENGTH):
            raise ValidationError(
                f"Username must be {settings.MIN_USERNAME_LENGTH}-"
                f"{settings.MAX_USERNAME_LENGTH} characters"
            )
        if not USERNAME_PATTERN.match(username):
            raise ValidationError(
                "Username can only contain lowercase letters, digits, underscores and dots"
            )
        return username

    def _normalize_name(self, name: str) -> str:
        name = name.strip()
        if not name:
            raise ValidationError("Name cannot be empty")
        return name

    def _check_bio(self, bio: Optional[str]) -> Optional[str]:
        if bio is not None and len(bio) > settings.MAX_BIO_LENGTH:
            raise ValidationError(f"Bio must be at most {settings.MAX_BIO_LENGTH} characters")
        return bio

    async def _profile(self, user: User, viewer_id: Optional[int] = None) -> UserProfile:
        return UserProfile(
            id=user.id,
            name=user.name,
            username=user.username,
            profile_photo=user.profile_photo,
            bio=user.bio,
            email=user.email if user.is_owner(viewer_id) else None,
            follower_count=await self.follow_repo.count_followers(user.id),
            following_count=await self.follow_repo.count_following(user.id),
            created_at=user.created_at,
        )

    async def register(self, data: UserCreate) -> UserProfile:
        """Create a user record"""
        username = self._normalize_username(data.username)
        bio = self._check_bio(data.bio)
        name = self._normalize_name(data.name)
        # Stored lower-cased so uniqueness is case-insensitive on every backend
        email = data.email.lower()

        user = await self.user_repo.create(
            name=name,
            username=username,
            email=email,
            bio=bio,
            profile_photo=data.profile_photo,
        )
        logger.info(f"Registered user {user.id} ({user.username})")
        return await self._profile(user, viewer_id=user.id)

    async def get_user(self, user_id: int) -> User:
        return await require_user(self.user_repo, user_id)

    async def get_profile(self, user_id: int, viewer_id: Optional[int] = None) -> UserProfile:
        """Public profile; email is only shown to its owner"""
        user = await require_user(self.user_repo, user_id)
        return await self._profile(user, viewer_id)

    async def update_profile(self, user_id: int, data: UpdateProfile) -> UserProfile:
        """Apply a partial profile update"""
        await require_user(self.user_repo, user_id)

        updates = {}
        if data.name is not None:
            updates["name"] = self._normalize_name(data.name)
        if data.username is not None:
            updates["username"] = self._normalize_username(data.username)
        if data.bio is not None:
            updates["bio"] = self._check_bio(data.bio)
        if data.profile_photo is not None:
            updates["profile_photo"] = data.profile_photo

        user = await self.user_repo.update(user_id, updates)
        logger.info(f"Updated profile of user {user_id}: {sorted(updates)}")
        return await self._profile(user, viewer_id=user_id)


class FollowGraphService:
    """Follow graph engine - requests, edges and the projections over them"""

    def __init__(
        self,
        user_repository: IUserRepository,
        follow_repository: IFollowRepository,
        cache: RedisCache,
        kafka: KafkaProducerManager,
    ):
        self.user_repo = user_repository
        self.follow_repo = follow_repository
        self.cache = cache
        self.kafka = kafka

    async def follow(self, requester_id: int, target_id: int) -> FollowStatusResponse:
        """
        Send a follow request

        Every follow goes through the target's request queue.

        Raises:
            InvalidOperation: requester and target are the same user
            NotFound: target does not exist
            AlreadyFollowing, AlreadyRequested: relation already exists
        """
        if requester_id == target_id:
            raise InvalidOperation("You cannot follow yourself")
        await require_user(self.user_repo, target_id)

        async with self.follow_repo.pair(requester_id, target_id) as tx:
            state = transition(await tx.relation(), RelationAction.FOLLOW)
            request = await tx.create_request()

        await self.cache.invalidate_follow_status(requester_id, target_id)
        await self.kafka.publish_follow_requested_event(request.id, requester_id, target_id)
        logger.info(f"User {requester_id} requested to follow {target_id} (request {request.id})")

        return status_response(state)

    async def unfollow(self, requester_id: int, target_id: int) -> FollowStatusResponse:
        """
        Remove the follow edge, or cancel the pending request if there is no edge

        Raises:
            NotFollowing: neither an edge nor a pending request exists
        """
        async with self.follow_repo.pair(requester_id, target_id) as tx:
            previous = await tx.relation()
            state = transition(previous, RelationAction.UNFOLLOW)
            if previous is RelationState.FOLLOWING:
                await tx.delete_edge()
            else:
                request = await tx.pending_request()
                await tx.delete_request(request.id)

        await self.cache.invalidate_follow_status(requester_id, target_id)
        await self.kafka.publish_follow_removed_event(requester_id, target_id, previous.value)
        logger.info(f"User {requester_id} removed {previous.value} relation to {target_id}")

        return status_response(state)

    async def follow_status(self, viewer_id: int, target_id: int) -> FollowStatusResponse:
        """Current {following, requested} of viewer towards target"""
        generation = await self.cache.get_follow_generation(viewer_id, target_id)
        cached = await self.cache.get_follow_status(viewer_id, target_id, generation)
        if cached:
            return FollowStatusResponse(**cached)

        await require_user(self.user_repo, target_id)
        state = await self.follow_repo.get_relation(viewer_id, target_id)
        response = status_response(state)

        await self.cache.set_follow_status(
            viewer_id, target_id, response.model_dump(), generation
        )
        return response

    async def _find_pending_request(self, owner_id: int, request_id: int) -> FollowRequest:
        request = await self.follow_repo.find_request(request_id)
        if not request or request.to_user_id != owner_id or not request.is_pending():
            raise NotFound("Follow request not found")
        return request

    async def _resolve(self, owner_id: int, request_id: int, action: RelationAction) -> ResolvedFollowRequest:
        request = await self._find_pending_request(owner_id, request_id)

        async with self.follow_repo.pair(request.from_user_id, owner_id) as tx:
            # Re-read under the pair lock; a concurrent cancel or decline wins
            pending = await tx.pending_request()
            current = (
                RelationState.REQUESTED
                if pending is not None and pending.id == request_id
                else RelationState.NONE
            )
            transition(current, action)

            if action is RelationAction.ACCEPT:
                resolved = await tx.resolve_request(request_id, RequestStatus.ACCEPTED)
                await tx.create_edge()
            else:
                resolved = await tx.resolve_request(request_id, RequestStatus.DECLINED)

        await self.cache.invalidate_follow_status(request.from_user_id, owner_id)

        identities = await resolve_identities(self.user_repo, [request.from_user_id])
        return ResolvedFollowRequest(
            id=resolved.id,
            from_user=identities[request.from_user_id],
            to_user_id=owner_id,
            status=resolved.status,
            created_at=resolved.created_at,
            resolved_at=resolved.resolved_at,
        )

    async def accept_request(self, owner_id: int, request_id: int) -> ResolvedFollowRequest:
        """
        Accept a pending request addressed to owner

        The edge is created in the same transaction that resolves the request.

        Raises:
            NotFound: no pending request with that id targets owner
        """
        resolved = await self._resolve(owner_id, request_id, RelationAction.ACCEPT)
        await self.kafka.publish_follow_accepted_event(request_id, resolved.from_user.id, owner_id)
        logger.info(f"User {owner_id} accepted follow request {request_id}")
        return resolved

    async def decline_request(self, owner_id: int, request_id: int) -> ResolvedFollowRequest:
        """
        Decline a pending request addressed to owner; no edge is created

        Raises:
            NotFound: no pending request with that id targets owner
        """
        resolved = await self._resolve(owner_id, request_id, RelationAction.DECLINE)
        await self.kafka.publish_follow_declined_event(request_id, resolved.from_user.id, owner_id)
        logger.info(f"User {owner_id} declined follow request {request_id}")
        return resolved

    async def list_follow_requests(self, owner_id: int) -> List[FollowRequestItem]:
        """Pending requests targeting owner, newest first"""
        requests = await self.follow_repo.list_pending_requests(owner_id)
        identities = await resolve_identities(self.user_repo, [r.from_user_id for r in requests])
        return [
            FollowRequestItem(id=r.id, from_user=identities[r.from_user_id], created_at=r.created_at)
            for r in requests
            if r.from_user_id in identities
        ]

    async def list_followers(self, user_id: int) -> List[UserIdentity]:
        """Users following user_id, most recent edge first"""
        await require_user(self.user_repo, user_id)
        edges = await self.follow_repo.list_followers(user_id)
        identities = await resolve_identities(self.user_repo, [e.follower_id for e in edges])
        return [identities[e.follower_id] for e in edges if e.follower_id in identities]

    async def list_following(self, user_id: int) -> List[UserIdentity]:
        """Users user_id follows, most recent edge first"""
        await require_user(self.user_repo, user_id)
        edges = await self.follow_repo.list_following(user_id)
        identities = await resolve_identities(self.user_repo, [e.followee_id for e in edges])
        return [identities[e.followee_id] for e in edges if e.followee_id in identities]


class MessagingService:
    """Messaging engine - direct messages, conversations and unread counters"""

    def __init__(
        self,
        user_repository: IUserRepository,
        message_repository: IMessageRepository,
        cache: RedisCache,
        kafka: KafkaProducerManager,
    ):
        self.user_repo = user_repository
        self.message_repo = message_repository
        self.cache = cache
        self.kafka = kafka

    def _to_out(self, message: Message, viewer_id: int) -> MessageOut:
        return MessageOut(
            id=message.id,
            from_user_id=message.from_user_id,
            to_user_id=message.to_user_id,
            text=message.text,
            created_at=message.created_at,
            read_at=message.read_at,
            is_me=message.from_user_id == viewer_id,
        )

    async def send_message(self, from_user_id: int, to_user_id: int, text: Optional[str]) -> MessageOut:
        """
        Send a text message; anyone may message anyone

        Raises:
            ValidationError: empty or oversized text, or messaging yourself
            NotFound: recipient does not exist
        """
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message text cannot be empty")
        if len(text) > settings.MAX_MESSAGE_LENGTH:
            raise ValidationError(
                f"Message text must be at most {settings.MAX_MESSAGE_LENGTH} characters"
            )
        if from_user_id == to_user_id:
            raise ValidationError("You cannot message yourself")
        await require_user(self.user_repo, to_user_id)

        message = await self.message_repo.create(from_user_id, to_user_id, text)

        await self.cache.invalidate_unread_count(to_user_id)
        await self.kafka.publish_message_sent_event(message.id, from_user_id, to_user_id)
        logger.debug(f"Message {message.id} sent from {from_user_id} to {to_user_id}")

        return self._to_out(message, from_user_id)

    async def list_messages(self, viewer_id: int, counterpart_id: int) -> List[MessageOut]:
        """Messages between viewer and counterpart, oldest first"""
        await require_user(self.user_repo, counterpart_id)
        messages = await self.message_repo.list_between(viewer_id, counterpart_id)
        return [self._to_out(m, viewer_id) for m in messages]

    async def mark_read(self, viewer_id: int, counterpart_id: int) -> MarkReadResponse:
        """Stamp every unread message from counterpart to viewer; idempotent"""
        updated = await self.message_repo.mark_read(
            viewer_id, counterpart_id, datetime.now(timezone.utc)
        )
        if updated:
            await self.cache.invalidate_unread_count(viewer_id)
            await self.kafka.publish_messages_read_event(viewer_id, counterpart_id, updated)
        return MarkReadResponse(success=True, updated=updated)

    async def list_conversations(self, viewer_id: int) -> List[ConversationItem]:
        """One entry per counterpart, most recent conversation first"""
        summaries = await self.message_repo.list_conversations(viewer_id)
        identities = await resolve_identities(self.user_repo, [s.counterpart_id for s in summaries])

        conversations = []
        for summary in summaries:
            identity = identities.get(summary.counterpart_id)
            if identity is None:
                continue
            last = summary.last_message
            conversations.append(
                ConversationItem(
                    **identity.model_dump(),
                    last_message=LastMessage(
                        id=last.id,
                        text=last.text,
                        created_at=last.created_at,
                        is_me=last.from_user_id == viewer_id,
                    ),
                    unread_count=summary.unread_count,
                )
            )
        return conversations

    async def unread_count(self, viewer_id: int) -> UnreadCountResponse:
        """Total unread messages addressed to viewer"""
        cached = await self.cache.get_unread_count(viewer_id)
        if cached is not None:
            return UnreadCountResponse(count=cached)

        count = await self.message_repo.count_unread(viewer_id)
        await self.cache.set_unread_count(viewer_id, count)
        return UnreadCountResponse(count=count)
