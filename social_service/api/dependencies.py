"""
FastAPI dependencies
"""
from fastapi import Depends, Header, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
import secrets

from ..application.services import FollowGraphService, MessagingService, UserService
from ..cache import RedisCache, get_cache
from ..config import settings
from ..exceptions import Unauthorized
from ..infrastructure import Repositories
from ..kafka_producer import KafkaProducerManager, get_kafka_producer
from ..schemas import CurrentUser
from ..security import decode_token

# Security scheme
security = HTTPBearer(auto_error=False)


def get_repositories(request: Request) -> Repositories:
    """Repositories of the configured storage backend, built at startup"""
    return request.app.state.repositories


def get_user_service(repos: Repositories = Depends(get_repositories)) -> UserService:
    return UserService(repos.users, repos.follows)


def get_follow_service(
    repos: Repositories = Depends(get_repositories),
    cache: RedisCache = Depends(get_cache),
    kafka: KafkaProducerManager = Depends(get_kafka_producer),
) -> FollowGraphService:
    return FollowGraphService(repos.users, repos.follows, cache, kafka)


def get_messaging_service(
    repos: Repositories = Depends(get_repositories),
    cache: RedisCache = Depends(get_cache),
    kafka: KafkaProducerManager = Depends(get_kafka_producer),
) -> MessagingService:
    return MessagingService(repos.users, repos.messages, cache, kafka)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    repos: Repositories = Depends(get_repositories),
) -> CurrentUser:
    """
    Get current authenticated user from JWT token

    Raises:
        Unauthorized: If the token is missing, invalid, expired or names an unknown user
    """
    if not credentials:
        raise Unauthorized("Not authenticated")

    payload = decode_token(credentials.credentials)
    if not payload or payload.get("type", "access") != "access":
        raise Unauthorized("Invalid or expired token")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise Unauthorized("Invalid token payload")

    user = await repos.users.find_by_id(user_id)
    if not user:
        raise Unauthorized("User not found")

    return CurrentUser(id=user.id, username=user.username)


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    repos: Repositories = Depends(get_repositories),
) -> Optional[CurrentUser]:
    """
    Get current authenticated user from JWT token (optional)

    Returns None if not authenticated instead of raising exception
    """
    if not credentials:
        return None

    try:
        return await get_current_user(credentials, repos)
    except Unauthorized:
        return None


async def verify_internal_key(x_internal_key: Optional[str] = Header(None)) -> None:
    """Guard for endpoints only other services may call"""
    if not x_internal_key or not secrets.compare_digest(x_internal_key, settings.INTERNAL_API_KEY):
        raise Unauthorized("Invalid internal API key")
