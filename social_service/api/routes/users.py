"""
User, profile and follow graph routes
"""
from fastapi import APIRouter, Depends, status
from typing import List, Optional

from ...application.services import FollowGraphService, UserService
from ...schemas import (
    CurrentUser,
    FollowRequestItem,
    FollowStatusResponse,
    ResolvedFollowRequest,
    UpdateProfile,
    UserCreate,
    UserIdentity,
    UserProfile,
)
from ..dependencies import (
    get_current_user,
    get_current_user_optional,
    get_follow_service,
    get_user_service,
    verify_internal_key,
)

router = APIRouter(prefix="/users", tags=["Users"])


@router.post(
    "",
    response_model=UserProfile,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_internal_key)],
    summary="Register a user identity",
)
async def register_user(
    data: UserCreate,
    service: UserService = Depends(get_user_service),
):
    """
    Register a user identity

    Called by the auth service after signup. Requires the X-Internal-Key header.
    """
    return await service.register(data)


# /users/me routes must be declared before /users/{user_id}
@router.get("/me", response_model=UserProfile, summary="Get my profile")
async def get_my_profile(
    current_user: CurrentUser = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    return await service.get_profile(current_user.id, viewer_id=current_user.id)


@router.put("/me", response_model=UserProfile, summary="Update my profile")
async def update_my_profile(
    data: UpdateProfile,
    current_user: CurrentUser = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    """
    Update current user's profile

    - **username**: lowercase letters, digits, `_` and `.`; 3-30 characters
    - **bio**: at most 500 characters
    """
    return await service.update_profile(current_user.id, data)


@router.get(
    "/me/follow-requests",
    response_model=List[FollowRequestItem],
    tags=["Follow Requests"],
    summary="List my pending follow requests",
)
async def list_my_follow_requests(
    current_user: CurrentUser = Depends(get_current_user),
    service: FollowGraphService = Depends(get_follow_service),
):
    return await service.list_follow_requests(current_user.id)


@router.post(
    "/follow-requests/{request_id}/accept",
    response_model=ResolvedFollowRequest,
    tags=["Follow Requests"],
    summary="Accept a follow request",
)
async def accept_follow_request(
    request_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: FollowGraphService = Depends(get_follow_service),
):
    return await service.accept_request(current_user.id, request_id)


@router.post(
    "/follow-requests/{request_id}/decline",
    response_model=ResolvedFollowRequest,
    tags=["Follow Requests"],
    summary="Decline a follow request",
)
async def decline_follow_request(
    request_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: FollowGraphService = Depends(get_follow_service),
):
    return await service.decline_request(current_user.id, request_id)


@router.get("/{user_id}", response_model=UserProfile, summary="Get a user's profile")
async def get_user_profile(
    user_id: int,
    current_user: Optional[CurrentUser] = Depends(get_current_user_optional),
    service: UserService = Depends(get_user_service),
):
    """
    Get user profile by ID

    Public endpoint (authentication optional). Email is only returned to its owner.
    """
    viewer_id = current_user.id if current_user else None
    return await service.get_profile(user_id, viewer_id=viewer_id)


@router.post(
    "/{user_id}/follow",
    response_model=FollowStatusResponse,
    tags=["Follow"],
    summary="Send a follow request",
)
async def follow_user(
    user_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: FollowGraphService = Depends(get_follow_service),
):
    """
    Request to follow a user

    The target decides through accept/decline; status becomes `requested`.
    """
    return await service.follow(current_user.id, user_id)


@router.delete(
    "/{user_id}/follow",
    response_model=FollowStatusResponse,
    tags=["Follow"],
    summary="Unfollow a user or cancel a follow request",
)
async def unfollow_user(
    user_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: FollowGraphService = Depends(get_follow_service),
):
    """
    Unfollow a user

    - Removes the follow relationship if it exists
    - Otherwise cancels the pending follow request
    """
    return await service.unfollow(current_user.id, user_id)


@router.get(
    "/{user_id}/follow-status",
    response_model=FollowStatusResponse,
    tags=["Follow"],
    summary="Get my follow status towards a user",
)
async def get_follow_status(
    user_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: FollowGraphService = Depends(get_follow_service),
):
    return await service.follow_status(current_user.id, user_id)


@router.get(
    "/{user_id}/followers",
    response_model=List[UserIdentity],
    tags=["Followers"],
    summary="Get user's followers",
)
async def get_followers(
    user_id: int,
    service: FollowGraphService = Depends(get_follow_service),
):
    """Users who follow the specified user, most recent first"""
    return await service.list_followers(user_id)


@router.get(
    "/{user_id}/following",
    response_model=List[UserIdentity],
    tags=["Following"],
    summary="Get users that user is following",
)
async def get_following(
    user_id: int,
    service: FollowGraphService = Depends(get_follow_service),
):
    """Users that the specified user follows, most recent first"""
    return await service.list_following(user_id)
