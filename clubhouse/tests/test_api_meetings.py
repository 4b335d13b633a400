import pytest
from fastapi.testclient import TestClient


def _create(client: TestClient, club_id: str, **overrides):
    body = {"title": "Standup", "maxParticipants": 2, "isVoiceOnly": True}
    body.update(overrides)
    return client.post(f"/api/clubs/{club_id}/meetings", json=body)


@pytest.fixture
def meeting_id(client, login_as, club, admin_user):
    login_as("alice")
    response = _create(client, club.club_id)
    assert response.status_code == 201, response.text
    return response.json()["id"]


def test_requires_authentication(client, club):
    response = client.get("/api/meetings/MTG-anything")
    assert response.status_code == 401


def test_create_returns_scheduled_meeting(client, login_as, club, admin_user):
    login_as("alice")

    response = _create(client, club.club_id, description="Daily check-in")

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "scheduled"
    assert body["clubId"] == club.club_id
    assert body["creatorId"] == admin_user.user_id
    assert body["creator"]["displayName"] == "Alice Admin"
    assert body["participants"] == []
    assert body["maxParticipants"] == 2
    assert body["isVoiceOnly"] is True
    assert body["startedAt"] is None
    assert len(body["joinCode"]) == 8


def test_create_via_meetings_endpoint_takes_club_in_body(client, login_as, club, admin_user):
    login_as("alice")

    response = client.post(
        "/api/meetings", json={"title": "Body club", "clubId": club.club_id}
    )
    assert response.status_code == 201
    assert response.json()["clubId"] == club.club_id

    missing = client.post("/api/meetings", json={"title": "No club"})
    assert missing.status_code == 400


@pytest.mark.parametrize(
    "overrides",
    [{"title": ""}, {"title": "   "}, {"maxParticipants": 1}, {"maxParticipants": 500}],
)
def test_create_validation_is_400(client, login_as, club, admin_user, overrides):
    login_as("alice")
    response = _create(client, club.club_id, **overrides)
    assert response.status_code == 400
    assert response.json()["detail"]


def test_malformed_body_is_400(client, login_as, club, admin_user):
    login_as("alice")
    response = _create(client, club.club_id, maxParticipants="lots")
    assert response.status_code == 400
    assert isinstance(response.json()["detail"], list)


def test_members_cannot_create(client, login_as, club, member_user):
    login_as("bob")
    assert _create(client, club.club_id).status_code == 403


def test_full_lifecycle_over_http(
    client, login_as, meeting_id, member_user, second_member, make_user, db_session, club
):
    from clubhouse.data.club_manager import ClubManager

    third = make_user("erin", "Erin", "Late")
    ClubManager(db_session).join_by_code(third, club.join_code)

    login_as("bob")
    assert client.post(f"/api/meetings/{meeting_id}/start").status_code == 403
    assert client.post(f"/api/meetings/{meeting_id}/join").status_code == 409

    login_as("alice")
    started = client.post(f"/api/meetings/{meeting_id}/start")
    assert started.status_code == 200
    assert started.json()["status"] == "active"
    assert started.json()["startedAt"] is not None
    assert client.post(f"/api/meetings/{meeting_id}/start").status_code == 409

    login_as("bob")
    joined = client.post(f"/api/meetings/{meeting_id}/join")
    assert joined.status_code == 200
    assert joined.json()["participants"] == [member_user.user_id]

    login_as("carol")
    joined = client.post(f"/api/meetings/{meeting_id}/join")
    assert joined.json()["participants"] == [member_user.user_id, second_member.user_id]

    login_as("erin")
    full = client.post(f"/api/meetings/{meeting_id}/join")
    assert full.status_code == 409
    assert full.json()["detail"] == "Meeting is full"

    login_as("alice")
    ended = client.post(f"/api/meetings/{meeting_id}/end")
    assert ended.status_code == 200
    assert ended.json()["status"] == "ended"
    assert ended.json()["participants"] == []
    assert ended.json()["endedAt"] is not None
    assert client.post(f"/api/meetings/{meeting_id}/end").status_code == 409

    snapshot = client.get(f"/api/meetings/{meeting_id}")
    assert snapshot.status_code == 200
    assert snapshot.json()["status"] == "ended"


def test_leave_when_absent_is_ok(client, login_as, meeting_id, member_user):
    login_as("alice")
    client.post(f"/api/meetings/{meeting_id}/start")

    login_as("bob")
    response = client.post(f"/api/meetings/{meeting_id}/leave")
    assert response.status_code == 200
    assert response.json()["participants"] == []
    assert client.get(f"/api/meetings/{meeting_id}/messages").json() == []


def test_cancel_endpoint(client, login_as, meeting_id, member_user):
    login_as("bob")
    assert client.post(f"/api/meetings/{meeting_id}/cancel").status_code == 403

    login_as("alice")
    cancelled = client.post(f"/api/meetings/{meeting_id}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert cancelled.json()["endedAt"] is None
    assert client.post(f"/api/meetings/{meeting_id}/cancel").status_code == 409


def test_messages_flow(client, login_as, meeting_id, member_user):
    login_as("alice")
    client.post(f"/api/meetings/{meeting_id}/start")

    login_as("bob")
    empty = client.post(f"/api/meetings/{meeting_id}/messages", json={"content": ""})
    assert empty.status_code == 400
    assert client.get(f"/api/meetings/{meeting_id}/messages").json() == []

    sent = client.post(f"/api/meetings/{meeting_id}/messages", json={"content": "hello"})
    assert sent.status_code == 201
    body = sent.json()
    assert body["content"] == "hello"
    assert body["messageType"] == "text"
    assert body["sequence"] == 1
    assert body["sender"]["displayName"] == "Bob Member"

    listed = client.get(f"/api/meetings/{meeting_id}/messages")
    assert [m["id"] for m in listed.json()] == [body["id"]]
    assert client.get(f"/api/meetings/{meeting_id}/messages?after=1").json() == []
    assert client.get(f"/api/meetings/{meeting_id}/messages?after=-1").status_code == 400


def test_messages_to_scheduled_meeting_conflict(client, login_as, meeting_id, member_user):
    login_as("bob")
    response = client.post(f"/api/meetings/{meeting_id}/messages", json={"content": "hi"})
    assert response.status_code == 409


def test_outsiders_are_forbidden(client, login_as, meeting_id, outsider):
    login_as("dave")
    assert client.get(f"/api/meetings/{meeting_id}").status_code == 403
    assert client.get(f"/api/meetings/{meeting_id}/messages").status_code == 403
    assert client.post(f"/api/meetings/{meeting_id}/leave").status_code == 403


def test_unknown_meeting_is_404(client, login_as, admin_user):
    login_as("alice")
    assert client.get("/api/meetings/MTG-missing").status_code == 404
    assert client.post("/api/meetings/MTG-missing/start").status_code == 404


def test_lookup_by_join_code(client, login_as, meeting_id, outsider):
    login_as("alice")
    code = client.get(f"/api/meetings/{meeting_id}").json()["joinCode"]

    login_as("dave")
    found = client.get(f"/api/meetings/code/{code.lower()}")
    assert found.status_code == 200
    assert found.json()["id"] == meeting_id
    assert client.get("/api/meetings/code/ZZZZZZZZ").status_code == 404


def test_club_meeting_list_newest_first(client, login_as, meeting_id, club, member_user):
    login_as("alice")
    second = _create(client, club.club_id, title="Retro").json()["id"]

    login_as("bob")
    listed = client.get(f"/api/clubs/{club.club_id}/meetings")
    assert listed.status_code == 200
    assert [m["id"] for m in listed.json()] == [second, meeting_id]
