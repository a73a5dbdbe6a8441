from .messages import router as messages_router
from .users import router as users_router

__all__ = ["messages_router", "users_router"]
