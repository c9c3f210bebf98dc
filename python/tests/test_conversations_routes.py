"""HTTP tests for conversation and message routes.

Exercises the transport layer end to end through auth_client: envelopes,
status codes, query validation and the deadline header. Business rules
are covered in more depth by test_messaging.py.
"""

from uuid import uuid4

from fastapi.testclient import TestClient

from tests.helpers import auth_headers, create_test_user_id


def _open(client: TestClient, caller: str, peer: str) -> dict:
    response = client.get(f"/conversations/user/{peer}", headers=auth_headers(caller))
    assert response.status_code == 200, response.text
    return response.json()["data"]


def _send(client: TestClient, conversation_id: str, sender: str, content: str):
    return client.post(
        f"/conversations/{conversation_id}/messages",
        json={"content": content},
        headers=auth_headers(sender),
    )


class TestGetOrCreateConversation:
    def test_first_contact_creates(self, auth_client: TestClient, alice, bob):
        data = _open(auth_client, alice, bob)

        assert data["created"] is True
        assert data["other_user"]["id"] == bob
        assert data["other_user"]["is_online"] is False
        assert data["unread_count"] == 0
        assert data["last_message_at"] is None

    def test_second_contact_from_peer_returns_same(self, auth_client: TestClient, alice, bob):
        first = _open(auth_client, alice, bob)
        second = _open(auth_client, bob, alice)

        assert second["id"] == first["id"]
        assert second["created"] is False
        assert second["other_user"]["id"] == alice

    def test_presence_reported(self, auth_client: TestClient, presence, alice, bob):
        presence.mark_online(bob)
        assert _open(auth_client, alice, bob)["other_user"]["is_online"] is True

    def test_self_conversation_400(self, auth_client: TestClient, alice):
        response = auth_client.get(f"/conversations/user/{alice}", headers=auth_headers(alice))

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_SELF_CONVERSATION"


class TestListConversations:
    def test_lists_with_unread_counts(self, auth_client: TestClient, alice, bob):
        conversation = _open(auth_client, alice, bob)
        _send(auth_client, conversation["id"], bob, "ping")

        response = auth_client.get("/conversations", headers=auth_headers(alice))

        assert response.status_code == 200
        data = response.json()["data"]
        assert [c["id"] for c in data] == [conversation["id"]]
        assert data[0]["unread_count"] == 1
        assert data[0]["last_message_preview"] == "ping"

    def test_empty_for_new_user(self, auth_client: TestClient):
        response = auth_client.get("/conversations", headers=auth_headers(create_test_user_id()))
        assert response.json() == {"data": []}


class TestSendMessage:
    def test_send_returns_201_with_message(self, auth_client: TestClient, alice, bob):
        conversation = _open(auth_client, alice, bob)

        response = _send(auth_client, conversation["id"], alice, "  hello  ")

        assert response.status_code == 201
        message = response.json()["data"]
        assert message["content"] == "hello"
        assert message["sender_id"] == alice
        assert message["recipient_id"] == bob
        assert message["is_read"] is False
        assert message["sender"]["id"] == alice

    def test_blank_content_400(self, auth_client: TestClient, alice, bob):
        conversation = _open(auth_client, alice, bob)

        response = _send(auth_client, conversation["id"], alice, "   ")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_CONTENT"

    def test_missing_content_field_400(self, auth_client: TestClient, alice, bob):
        conversation = _open(auth_client, alice, bob)

        response = auth_client.post(
            f"/conversations/{conversation['id']}/messages",
            json={},
            headers=auth_headers(alice),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"

    def test_malformed_json_400(self, auth_client: TestClient, alice, bob):
        conversation = _open(auth_client, alice, bob)

        response = auth_client.post(
            f"/conversations/{conversation['id']}/messages",
            content=b"{not json",
            headers={**auth_headers(alice), "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"

    def test_outsider_gets_404(self, auth_client: TestClient, alice, bob):
        conversation = _open(auth_client, alice, bob)
        eve = create_test_user_id("eve")

        outsider = _send(auth_client, conversation["id"], eve, "hi")
        missing = _send(auth_client, str(uuid4()), eve, "hi")

        assert outsider.status_code == missing.status_code == 404
        assert outsider.json()["error"]["code"] == missing.json()["error"]["code"]
        assert outsider.json()["error"]["message"] == missing.json()["error"]["message"]

    def test_bad_conversation_id_400(self, auth_client: TestClient, alice):
        response = _send(auth_client, "not-a-uuid", alice, "hi")
        assert response.status_code == 400

    def test_timeout_header_within_cap_accepted(self, auth_client: TestClient, alice, bob):
        conversation = _open(auth_client, alice, bob)

        response = auth_client.post(
            f"/conversations/{conversation['id']}/messages",
            json={"content": "hi"},
            headers={**auth_headers(alice), "X-Request-Timeout-Ms": "60000"},
        )

        assert response.status_code == 201

    def test_invalid_timeout_header_400(self, auth_client: TestClient, alice, bob):
        conversation = _open(auth_client, alice, bob)

        response = auth_client.post(
            f"/conversations/{conversation['id']}/messages",
            json={"content": "hi"},
            headers={**auth_headers(alice), "X-Request-Timeout-Ms": "0"},
        )

        assert response.status_code == 400


class TestListMessages:
    def test_pagination_envelope(self, auth_client: TestClient, alice, bob):
        conversation = _open(auth_client, alice, bob)
        for i in range(3):
            _send(auth_client, conversation["id"], alice, f"m{i}")

        response = auth_client.get(
            f"/conversations/{conversation['id']}/messages",
            params={"page": 1, "page_size": 2},
            headers=auth_headers(bob),
        )

        assert response.status_code == 200
        body = response.json()
        assert [m["content"] for m in body["data"]] == ["m1", "m2"]
        assert body["pagination"] == {
            "current_page": 1,
            "page_size": 2,
            "total_pages": 2,
            "total_messages": 3,
            "has_more": True,
        }

    def test_page_size_out_of_range_400(self, auth_client: TestClient, alice, bob):
        conversation = _open(auth_client, alice, bob)

        response = auth_client.get(
            f"/conversations/{conversation['id']}/messages",
            params={"page_size": 101},
            headers=auth_headers(alice),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"


class TestMarkRead:
    def test_mark_read_then_repeat(self, auth_client: TestClient, alice, bob):
        conversation = _open(auth_client, alice, bob)
        _send(auth_client, conversation["id"], bob, "one")
        _send(auth_client, conversation["id"], bob, "two")

        first = auth_client.patch(
            f"/conversations/{conversation['id']}/read", headers=auth_headers(alice)
        )
        second = auth_client.patch(
            f"/conversations/{conversation['id']}/read", headers=auth_headers(alice)
        )

        assert first.status_code == 200
        assert first.json()["data"] == {
            "conversation_id": conversation["id"],
            "marked_count": 2,
        }
        assert second.json()["data"]["marked_count"] == 0


class TestUnreadCount:
    def test_counts_across_conversations(self, auth_client: TestClient, alice, bob):
        carol = create_test_user_id("carol")
        with_bob = _open(auth_client, alice, bob)
        with_carol = _open(auth_client, alice, carol)
        _send(auth_client, with_bob["id"], bob, "a")
        _send(auth_client, with_carol["id"], carol, "b")
        _send(auth_client, with_carol["id"], carol, "c")

        response = auth_client.get("/unread-count", headers=auth_headers(alice))

        assert response.status_code == 200
        assert response.json() == {"data": {"unread_count": 3}}


class TestDeleteConversation:
    def test_delete_then_gone(self, auth_client: TestClient, alice, bob):
        conversation = _open(auth_client, alice, bob)
        _send(auth_client, conversation["id"], alice, "bye")

        response = auth_client.delete(
            f"/conversations/{conversation['id']}", headers=auth_headers(bob)
        )
        assert response.status_code == 204

        again = auth_client.delete(
            f"/conversations/{conversation['id']}", headers=auth_headers(alice)
        )
        assert again.status_code == 404

        messages = auth_client.get(
            f"/conversations/{conversation['id']}/messages", headers=auth_headers(alice)
        )
        assert messages.status_code == 404


class TestAuthRequired:
    def test_every_route_requires_auth(self, auth_client: TestClient):
        conversation_id = uuid4()
        requests = [
            ("GET", "/conversations"),
            ("GET", "/unread-count"),
            ("GET", "/conversations/user/someone"),
            ("GET", f"/conversations/{conversation_id}/messages"),
            ("POST", f"/conversations/{conversation_id}/messages"),
            ("PATCH", f"/conversations/{conversation_id}/read"),
            ("DELETE", f"/conversations/{conversation_id}"),
        ]
        for method, path in requests:
            response = auth_client.request(method, path)
            assert response.status_code == 401, f"{method} {path}"
            assert response.json()["error"]["code"] == "E_UNAUTHENTICATED"
