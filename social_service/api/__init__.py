from .routes import messages_router, users_router

__all__ = ["messages_router", "users_router"]
