"""
Follow relation state machine

An ordered pair (viewer -> target) is always in exactly one of three states.
Every follow-related mutation goes through transition(), so the engine and
the client agree on what a button press means.
"""
from enum import Enum

from ..exceptions import AlreadyFollowing, AlreadyRequested, NotFollowing, NotFound


class RelationState(str, Enum):
    NONE = "none"
    REQUESTED = "requested"
    FOLLOWING = "following"

    @property
    def following(self) -> bool:
        return self is RelationState.FOLLOWING

    @property
    def requested(self) -> bool:
        return self is RelationState.REQUESTED

    @classmethod
    def from_flags(cls, following: bool, requested: bool) -> "RelationState":
        if following:
            return cls.FOLLOWING
        if requested:
            return cls.REQUESTED
        return cls.NONE


class RelationAction(str, Enum):
    FOLLOW = "follow"
    UNFOLLOW = "unfollow"
    ACCEPT = "accept"
    DECLINE = "decline"


_TRANSITIONS = {
    (RelationState.NONE, RelationAction.FOLLOW): RelationState.REQUESTED,
    (RelationState.REQUESTED, RelationAction.UNFOLLOW): RelationState.NONE,
    (RelationState.REQUESTED, RelationAction.ACCEPT): RelationState.FOLLOWING,
    (RelationState.REQUESTED, RelationAction.DECLINE): RelationState.NONE,
    (RelationState.FOLLOWING, RelationAction.UNFOLLOW): RelationState.NONE,
}

_REJECTIONS = {
    (RelationState.FOLLOWING, RelationAction.FOLLOW): AlreadyFollowing,
    (RelationState.REQUESTED, RelationAction.FOLLOW): AlreadyRequested,
    (RelationState.NONE, RelationAction.UNFOLLOW): NotFollowing,
}


def transition(state: RelationState, action: RelationAction) -> RelationState:
    """
    Apply action to state

    Raises:
        AlreadyFollowing, AlreadyRequested: follow on an existing relation
        NotFollowing: unfollow with nothing to remove
        NotFound: accept/decline with no pending request
    """
    try:
        return _TRANSITIONS[(state, action)]
    except KeyError:
        pass

    error = _REJECTIONS.get((state, action))
    if error is not None:
        raise error()
    raise NotFound("Follow request not found")


def toggle_action(state: RelationState) -> RelationAction:
    """Action a single follow/unfollow button performs in the given state"""
    if state is RelationState.NONE:
        return RelationAction.FOLLOW
    return RelationAction.UNFOLLOW
