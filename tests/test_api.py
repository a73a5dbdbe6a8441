"""HTTP surface tests using FastAPI's TestClient."""

from datetime import timedelta

from social_service.security import create_access_token
from tests.conftest import INTERNAL_HEADERS, auth_headers, register


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestAuth:
    def test_missing_token_is_401(self, client):
        response = client.get("/messages/unread-count")
        assert response.status_code == 401
        assert response.json()["error"] == "Not authenticated"
        assert response.json()["code"] == "Unauthorized"
        assert response.headers["www-authenticate"] == "Bearer"

    def test_garbage_token_is_401(self, client):
        response = client.get(
            "/messages/unread-count", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    def test_expired_token_is_401(self, client):
        alice = register(client, "alice")
        token = create_access_token(alice["id"], "alice", expires_delta=timedelta(minutes=-1))
        response = client.get(
            "/messages/unread-count", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401

    def test_token_for_unknown_user_is_401(self, client):
        response = client.get(
            "/messages/unread-count", headers=auth_headers({"id": 999, "username": "ghost"})
        )
        assert response.status_code == 401

    def test_register_requires_internal_key(self, client):
        response = client.post(
            "/users",
            json={"name": "Eve", "username": "eve", "email": "eve@example.com"},
        )
        assert response.status_code == 401


class TestProfiles:
    def test_public_profile_hides_email(self, client):
        alice = register(client, "alice")
        response = client.get(f"/users/{alice['id']}")
        assert response.status_code == 200
        body = response.json()
        assert body["username"] == "alice"
        assert body["email"] is None
        assert body["followerCount"] == 0
        assert body["followingCount"] == 0

    def test_me_shows_email(self, client):
        alice = register(client, "alice")
        response = client.get("/users/me", headers=auth_headers(alice))
        assert response.json()["email"] == "alice@example.com"

    def test_update_me(self, client):
        alice = register(client, "alice")
        response = client.put(
            "/users/me",
            json={"bio": "building things", "profilePhoto": "uploads/alice.jpg"},
            headers=auth_headers(alice),
        )
        assert response.status_code == 200
        assert response.json()["bio"] == "building things"
        assert response.json()["profilePhoto"] == "uploads/alice.jpg"

    def test_update_invalid_username_is_400(self, client):
        alice = register(client, "alice")
        response = client.put(
            "/users/me", json={"username": "Bad Name!"}, headers=auth_headers(alice)
        )
        assert response.status_code == 400
        assert "Username" in response.json()["error"]

    def test_duplicate_registration_is_409(self, client):
        register(client, "alice")
        response = client.post(
            "/users",
            json={"name": "Other", "username": "alice", "email": "other@example.com"},
            headers=INTERNAL_HEADERS,
        )
        assert response.status_code == 409

    def test_malformed_email_is_400(self, client):
        response = client.post(
            "/users",
            json={"name": "Eve", "username": "eve", "email": "@@@"},
            headers=INTERNAL_HEADERS,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "ValidationError"
        assert response.json()["error"].startswith("email")

    def test_blank_name_is_400(self, client):
        response = client.post(
            "/users",
            json={"name": "   ", "username": "eve", "email": "eve@example.com"},
            headers=INTERNAL_HEADERS,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Name cannot be empty"

        alice = register(client, "alice")
        response = client.put("/users/me", json={"name": "  "}, headers=auth_headers(alice))
        assert response.status_code == 400
        assert client.get(f"/users/{alice['id']}").json()["name"] == "Alice"

    def test_unknown_profile_is_404(self, client):
        response = client.get("/users/404")
        assert response.status_code == 404
        assert response.json()["error"] == "User not found"


class TestFollowFlow:
    def test_request_accept_unfollow(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")

        response = client.post(f"/users/{bob['id']}/follow", headers=auth_headers(alice))
        assert response.status_code == 200
        assert response.json() == {"following": False, "requested": True}

        status = client.get(f"/users/{bob['id']}/follow-status", headers=auth_headers(alice))
        assert status.json() == {"following": False, "requested": True}

        requests = client.get("/users/me/follow-requests", headers=auth_headers(bob)).json()
        assert len(requests) == 1
        assert requests[0]["fromUser"]["username"] == "alice"

        accepted = client.post(
            f"/users/follow-requests/{requests[0]['id']}/accept", headers=auth_headers(bob)
        )
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "accepted"
        assert accepted.json()["fromUser"]["id"] == alice["id"]

        status = client.get(f"/users/{bob['id']}/follow-status", headers=auth_headers(alice))
        assert status.json() == {"following": True, "requested": False}

        followers = client.get(f"/users/{bob['id']}/followers").json()
        assert [u["id"] for u in followers] == [alice["id"]]
        following = client.get(f"/users/{alice['id']}/following").json()
        assert [u["id"] for u in following] == [bob["id"]]
        assert client.get(f"/users/{bob['id']}").json()["followerCount"] == 1

        response = client.delete(f"/users/{bob['id']}/follow", headers=auth_headers(alice))
        assert response.json() == {"following": False, "requested": False}
        assert client.get(f"/users/{bob['id']}/followers").json() == []

    def test_delete_cancels_request(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        client.post(f"/users/{bob['id']}/follow", headers=auth_headers(alice))

        response = client.delete(f"/users/{bob['id']}/follow", headers=auth_headers(alice))

        assert response.json() == {"following": False, "requested": False}
        assert client.get("/users/me/follow-requests", headers=auth_headers(bob)).json() == []

    def test_delete_without_relation_is_404(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        response = client.delete(f"/users/{bob['id']}/follow", headers=auth_headers(alice))
        assert response.status_code == 404
        assert response.json()["code"] == "NotFollowing"

    def test_self_follow_is_400(self, client):
        alice = register(client, "alice")
        response = client.post(f"/users/{alice['id']}/follow", headers=auth_headers(alice))
        assert response.status_code == 400
        assert response.json()["error"] == "You cannot follow yourself"

    def test_duplicate_request_is_409(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        client.post(f"/users/{bob['id']}/follow", headers=auth_headers(alice))
        response = client.post(f"/users/{bob['id']}/follow", headers=auth_headers(alice))
        assert response.status_code == 409
        assert response.json()["code"] == "AlreadyRequested"

    def test_decline(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        client.post(f"/users/{bob['id']}/follow", headers=auth_headers(alice))
        request_id = client.get("/users/me/follow-requests", headers=auth_headers(bob)).json()[0]["id"]

        response = client.post(
            f"/users/follow-requests/{request_id}/decline", headers=auth_headers(bob)
        )

        assert response.status_code == 200
        assert response.json()["status"] == "declined"
        status = client.get(f"/users/{bob['id']}/follow-status", headers=auth_headers(alice))
        assert status.json() == {"following": False, "requested": False}

    def test_accept_wrong_id_is_404(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        client.post(f"/users/{bob['id']}/follow", headers=auth_headers(alice))

        response = client.post("/users/follow-requests/999/accept", headers=auth_headers(bob))

        assert response.status_code == 404
        status = client.get(f"/users/{bob['id']}/follow-status", headers=auth_headers(alice))
        assert status.json() == {"following": False, "requested": True}


class TestMessages:
    def test_send_list_read(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")

        sent = client.post(
            "/messages",
            json={"toUserId": bob["id"], "text": "hi"},
            headers=auth_headers(alice),
        )
        assert sent.status_code == 201
        assert sent.json()["isMe"] is True
        assert sent.json()["readAt"] is None

        assert client.get("/messages/unread-count", headers=auth_headers(bob)).json() == {"count": 1}

        conversations = client.get("/messages/conversations", headers=auth_headers(bob)).json()
        assert len(conversations) == 1
        assert conversations[0]["id"] == alice["id"]
        assert conversations[0]["name"] == "Alice"
        assert conversations[0]["unreadCount"] == 1
        assert conversations[0]["lastMessage"]["text"] == "hi"
        assert conversations[0]["lastMessage"]["isMe"] is False

        messages = client.get(
            "/messages", params={"with": alice["id"]}, headers=auth_headers(bob)
        ).json()
        assert [(m["text"], m["isMe"]) for m in messages] == [("hi", False)]

        ack = client.post("/messages/read", json={"with": alice["id"]}, headers=auth_headers(bob))
        assert ack.json() == {"success": True, "updated": 1}
        assert client.get("/messages/unread-count", headers=auth_headers(bob)).json() == {"count": 0}

    def test_empty_text_is_400(self, client):
        alice = register(client, "alice")
        bob = register(client, "bob")
        response = client.post(
            "/messages",
            json={"toUserId": bob["id"], "text": "   "},
            headers=auth_headers(alice),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Message text cannot be empty"

    def test_missing_field_is_400(self, client):
        alice = register(client, "alice")
        response = client.post("/messages", json={"text": "hi"}, headers=auth_headers(alice))
        assert response.status_code == 400
        assert response.json()["code"] == "ValidationError"
        assert "toUserId" in response.json()["error"]

    def test_list_requires_with(self, client):
        alice = register(client, "alice")
        response = client.get("/messages", headers=auth_headers(alice))
        assert response.status_code == 400
