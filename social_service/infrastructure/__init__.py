"""
Storage backends
"""
from dataclasses import dataclass

from ..database import Database
from ..domain.repositories import IFollowRepository, IMessageRepository, IUserRepository
from .memory import InMemoryFollowRepository, InMemoryMessageRepository, InMemoryUserRepository
from .postgres import FollowRepository, MessageRepository, UserRepository


@dataclass
class Repositories:
    """Repositories of one storage backend"""
    users: IUserRepository
    follows: IFollowRepository
    messages: IMessageRepository


def create_repositories(backend: str, db: Database) -> Repositories:
    """Build the repositories for a STORAGE_BACKEND value"""
    if backend == "memory":
        return Repositories(
            users=InMemoryUserRepository(),
            follows=InMemoryFollowRepository(),
            messages=InMemoryMessageRepository(),
        )
    if backend == "postgres":
        return Repositories(
            users=UserRepository(db),
            follows=FollowRepository(db),
            messages=MessageRepository(db),
        )
    raise ValueError(f"Unknown storage backend: {backend}")
