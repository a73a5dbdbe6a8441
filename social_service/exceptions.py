"""
Error taxonomy shared by the engines and the HTTP layer

Every error is an HTTPException carrying its own status code, so services can
raise them directly and FastAPI renders them through the handlers in main.py.
"""
from typing import Dict, Optional

from fastapi import HTTPException, status


class SocialServiceError(HTTPException):
    """Base class for all service errors"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal server error"

    def __init__(self, detail: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )

    @property
    def code(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        return str(self.detail)


class ValidationError(SocialServiceError):
    """Malformed input"""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class InvalidOperation(ValidationError):
    """Operation that can never succeed for these arguments"""

    default_detail = "Invalid operation"


class NotFound(SocialServiceError):
    """Referenced entity does not exist"""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class NotFollowing(NotFound):
    default_detail = "You are not following this user"


class Conflict(SocialServiceError):
    """State conflict with an existing entity"""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


class AlreadyFollowing(Conflict):
    default_detail = "You are already following this user"


class AlreadyRequested(Conflict):
    default_detail = "Follow request already pending"


class Unauthorized(SocialServiceError):
    """Missing or invalid credential"""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Not authenticated"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})
