"""Tests for poll comments."""

from collections.abc import Callable

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from pollify.models.comment import Comment
from pollify.models.poll import Poll, PollStatus, PollVisibility
from pollify.models.user import User
from pollify.services.comment import MAX_COMMENT_LENGTH

FINGERPRINT = "fp-test-browser-0001"


def _comment(client: TestClient, poll_id: int, content: str, **kw):
    return client.post(
        f"/api/polls/{poll_id}/comments",
        json={"content": content, "fingerprint": FINGERPRINT},
        **kw,
    )


class TestCreateComment:
    def test_single_character(self, client: TestClient, test_poll: Poll):
        response = _comment(client, test_poll.id, "x")
        assert response.status_code == 201
        assert "comment_id" in response.json()

    def test_max_length(self, client: TestClient, test_poll: Poll):
        response = _comment(client, test_poll.id, "x" * MAX_COMMENT_LENGTH)
        assert response.status_code == 201

    def test_empty_rejected(self, client: TestClient, test_poll: Poll):
        response = _comment(client, test_poll.id, "")
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_whitespace_only_rejected(self, client: TestClient, test_poll: Poll):
        assert _comment(client, test_poll.id, "   \n\t ").status_code == 422

    def test_over_max_length_rejected(self, client: TestClient, db: Session, test_poll: Poll):
        response = _comment(client, test_poll.id, "x" * (MAX_COMMENT_LENGTH + 1))
        assert response.status_code == 422
        assert db.query(Comment).count() == 0

    def test_length_counts_submitted_text(self, client: TestClient, db: Session, test_poll: Poll):
        response = _comment(client, test_poll.id, "x" * MAX_COMMENT_LENGTH + " ")
        assert response.status_code == 422
        assert db.query(Comment).count() == 0

    def test_content_is_normalized(self, client: TestClient, db: Session, test_poll: Poll):
        response = _comment(client, test_poll.id, "  great   poll\n\nthanks  ")
        comment = db.query(Comment).filter(Comment.id == response.json()["comment_id"]).one()
        assert comment.content == "great poll\n\nthanks"

    def test_records_signed_in_commenter(
        self, client: TestClient, db: Session, test_poll: Poll, test_user: User, auth_headers
    ):
        response = _comment(client, test_poll.id, "Hello", headers=auth_headers)
        comment = db.query(Comment).filter(Comment.id == response.json()["comment_id"]).one()
        assert comment.commenter_id == test_user.id
        assert comment.commenter_fingerprint == FINGERPRINT

    def test_unknown_poll(self, client: TestClient):
        assert _comment(client, 9999, "Hello").status_code == 404

    def test_comments_disabled(self, client: TestClient, make_poll: Callable[..., Poll]):
        poll = make_poll(allow_comments=False)
        response = _comment(client, poll.id, "Hello")
        assert response.status_code == 403

    def test_closed_poll(self, client: TestClient, make_poll: Callable[..., Poll]):
        poll = make_poll(status=PollStatus.CLOSED.value)
        response = _comment(client, poll.id, "Hello")
        assert response.status_code == 410


class TestListComments:
    def test_oldest_first_with_commenter(
        self, client: TestClient, test_poll: Poll, auth_headers: dict
    ):
        _comment(client, test_poll.id, "first", headers=auth_headers)
        _comment(client, test_poll.id, "second")

        response = client.get(f"/api/polls/{test_poll.id}/comments")
        assert response.status_code == 200
        body = response.json()
        assert [c["content"] for c in body] == ["first", "second"]
        assert body[0]["commenter"]["name"] == "Test User"
        assert body[1]["commenter"] is None
        assert "commenter_fingerprint" not in body[0]

    def test_private_poll_forbidden_for_others(
        self, client: TestClient, make_poll: Callable[..., Poll], test_user: User
    ):
        poll = make_poll(creator=test_user, visibility=PollVisibility.PRIVATE.value)
        assert client.get(f"/api/polls/{poll.id}/comments").status_code == 403

    def test_private_poll_visible_to_creator(
        self, client: TestClient, make_poll: Callable[..., Poll], test_user: User, auth_headers
    ):
        poll = make_poll(creator=test_user, visibility=PollVisibility.PRIVATE.value)
        response = client.get(f"/api/polls/{poll.id}/comments", headers=auth_headers)
        assert response.status_code == 200

    def test_unknown_poll(self, client: TestClient):
        assert client.get("/api/polls/9999/comments").status_code == 404


class TestDeleteComment:
    def test_author_can_delete(
        self, client: TestClient, db: Session, test_poll: Poll, other_headers: dict
    ):
        comment_id = _comment(client, test_poll.id, "mine", headers=other_headers).json()[
            "comment_id"
        ]
        response = client.delete(f"/api/comments/{comment_id}", headers=other_headers)
        assert response.status_code == 200
        assert response.json() == {"status": "deleted"}
        assert db.query(Comment).count() == 0

    def test_poll_creator_can_delete(
        self, client: TestClient, test_poll: Poll, auth_headers: dict
    ):
        comment_id = _comment(client, test_poll.id, "anonymous").json()["comment_id"]
        response = client.delete(f"/api/comments/{comment_id}", headers=auth_headers)
        assert response.status_code == 200

    def test_other_user_forbidden(
        self, client: TestClient, test_poll: Poll, other_headers: dict
    ):
        comment_id = _comment(client, test_poll.id, "anonymous").json()["comment_id"]
        response = client.delete(f"/api/comments/{comment_id}", headers=other_headers)
        assert response.status_code == 403

    def test_anonymous_unauthorized(self, client: TestClient, test_poll: Poll):
        comment_id = _comment(client, test_poll.id, "anonymous").json()["comment_id"]
        assert client.delete(f"/api/comments/{comment_id}").status_code == 401

    def test_unknown_comment(self, client: TestClient, auth_headers: dict):
        assert client.delete("/api/comments/9999", headers=auth_headers).status_code == 404
