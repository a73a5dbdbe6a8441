"""Shared fixtures for engine and HTTP tests.

Everything runs against the in-memory storage backend with Redis and Kafka
disabled, so no external services are required.
"""

import os

os.environ["STORAGE_BACKEND"] = "memory"
os.environ["REDIS_ENABLED"] = "false"
os.environ["KAFKA_ENABLED"] = "false"
os.environ["DB_CREATE_SCHEMA"] = "false"
os.environ["INTERNAL_API_KEY"] = "test-internal-key"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"

import pytest
from fastapi.testclient import TestClient

from social_service.application.services import (
    FollowGraphService,
    MessagingService,
    UserService,
)
from social_service.cache import cache
from social_service.database import db
from social_service.infrastructure import create_repositories
from social_service.kafka_producer import kafka_producer
from social_service.main import app
from social_service.security import create_access_token

INTERNAL_HEADERS = {"X-Internal-Key": "test-internal-key"}


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def repos():
    """Fresh in-memory repositories for each test."""
    return create_repositories("memory", db)


@pytest.fixture
def user_service(repos):
    return UserService(repos.users, repos.follows)


@pytest.fixture
def follow_service(repos):
    return FollowGraphService(repos.users, repos.follows, cache, kafka_producer)


@pytest.fixture
def messaging_service(repos):
    return MessagingService(repos.users, repos.messages, cache, kafka_producer)


async def make_user(repos, username="alice", name=None, email=None, **kwargs):
    return await repos.users.create(
        name=name or username.title(),
        username=username,
        email=email or f"{username}@example.com",
        **kwargs,
    )


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client():
    """TestClient with the app lifespan running (fresh memory backend)."""
    with TestClient(app) as test_client:
        yield test_client


def register(client, username, name=None, email=None):
    response = client.post(
        "/users",
        json={
            "name": name or username.title(),
            "username": username,
            "email": email or f"{username}@example.com",
        },
        headers=INTERNAL_HEADERS,
    )
    assert response.status_code == 201, response.text
    return response.json()


def auth_headers(user):
    token = create_access_token(user["id"], user["username"])
    return {"Authorization": f"Bearer {token}"}
