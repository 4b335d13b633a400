import asyncio
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from clubhouse.data.club_manager import ClubManager
from clubhouse.data.user_manager import UserManager
from clubhouse.database import Base
from clubhouse.models.meeting import MeetingMessage, MeetingStatus, MessageType
from clubhouse.models.user import User
from clubhouse.services.errors import (
    AuthorizationError,
    CapacityError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from clubhouse.services.meeting_events import club_room, meeting_room
from clubhouse.services.meeting_lifecycle import MeetingLifecycleController
from clubhouse.services.meeting_locks import MeetingLockRegistry
from clubhouse.utils.websocket_manager import ConnectionInfo, WebSocketManager


@pytest.fixture
def controller(db_session, notifier, locks):
    return MeetingLifecycleController(db_session, notifier=notifier, locks=locks)


def _system_messages(db_session, meeting_id):
    return (
        db_session.query(MeetingMessage)
        .filter(
            MeetingMessage.meeting_id == meeting_id,
            MeetingMessage.message_type == MessageType.SYSTEM.value,
        )
        .order_by(MeetingMessage.sequence)
        .all()
    )


async def _active_meeting(controller, club, admin, **kwargs):
    meeting = await controller.create(club.club_id, admin, "Weekly sync", **kwargs)
    return await controller.start(meeting.meeting_id, admin)


@pytest.mark.anyio("asyncio")
async def test_standup_scenario(
    controller, db_session, club, admin_user, member_user, second_member, make_user
):
    third = make_user("erin", "Erin", "Late")
    ClubManager(db_session).join_by_code(third, club.join_code)

    meeting = await controller.create(
        club.club_id,
        admin_user,
        "Standup",
        max_participants=2,
        is_voice_only=True,
    )
    assert meeting.status == MeetingStatus.SCHEDULED.value
    assert meeting.is_voice_only is True
    assert meeting.started_at is None
    meeting_id = meeting.meeting_id

    meeting = await controller.start(meeting_id, admin_user)
    assert meeting.status == MeetingStatus.ACTIVE.value
    assert meeting.started_at is not None

    meeting = await controller.join(meeting_id, member_user)
    assert meeting.participant_ids == [member_user.user_id]

    meeting = await controller.join(meeting_id, second_member)
    assert meeting.participant_ids == [member_user.user_id, second_member.user_id]

    with pytest.raises(CapacityError):
        await controller.join(meeting_id, third)
    assert controller.meetings.get_meeting(meeting_id).participant_ids == [
        member_user.user_id,
        second_member.user_id,
    ]

    meeting = await controller.end(meeting_id, admin_user)
    assert meeting.status == MeetingStatus.ENDED.value
    assert meeting.participant_ids == []
    assert meeting.ended_at is not None


@pytest.mark.anyio("asyncio")
async def test_create_requires_title_and_sane_bounds(controller, club, admin_user):
    with pytest.raises(ValidationError):
        await controller.create(club.club_id, admin_user, "   ")
    with pytest.raises(ValidationError):
        await controller.create(club.club_id, admin_user, None)
    with pytest.raises(ValidationError):
        await controller.create(club.club_id, admin_user, "Tiny", max_participants=1)
    with pytest.raises(ValidationError):
        await controller.create(club.club_id, admin_user, "Huge", max_participants=101)

    meeting = await controller.create(
        club.club_id, admin_user, "  Trimmed  ", max_participants=2
    )
    assert meeting.title == "Trimmed"
    assert meeting.max_participants == 2
    assert len(meeting.join_code) == 8


@pytest.mark.anyio("asyncio")
async def test_create_requires_club_admin(controller, club, member_user, outsider):
    with pytest.raises(AuthorizationError):
        await controller.create(club.club_id, member_user, "Not mine")
    with pytest.raises(AuthorizationError):
        await controller.create(club.club_id, outsider, "Not mine either")
    with pytest.raises(NotFoundError):
        await controller.create("CLB-missing", member_user, "Nowhere")


@pytest.mark.anyio("asyncio")
async def test_second_start_is_rejected_and_changes_nothing(controller, club, admin_user):
    meeting = await _active_meeting(controller, club, admin_user)
    started_at = meeting.started_at

    with pytest.raises(InvalidStateError):
        await controller.start(meeting.meeting_id, admin_user)

    reloaded = controller.meetings.get_meeting(meeting.meeting_id)
    assert reloaded.status == MeetingStatus.ACTIVE.value
    assert reloaded.started_at == started_at


@pytest.mark.anyio("asyncio")
async def test_only_admins_start_and_end(controller, club, admin_user, member_user):
    meeting = await controller.create(club.club_id, admin_user, "Admins only")
    with pytest.raises(AuthorizationError):
        await controller.start(meeting.meeting_id, member_user)
    assert controller.meetings.get_meeting(meeting.meeting_id).status == "scheduled"

    await controller.start(meeting.meeting_id, admin_user)
    with pytest.raises(AuthorizationError):
        await controller.end(meeting.meeting_id, member_user)
    assert controller.meetings.get_meeting(meeting.meeting_id).status == "active"


@pytest.mark.anyio("asyncio")
async def test_unknown_meeting_is_not_found(controller, club, admin_user):
    with pytest.raises(NotFoundError):
        await controller.start("MTG-nope", admin_user)
    with pytest.raises(NotFoundError):
        await controller.join("MTG-nope", admin_user)


@pytest.mark.anyio("asyncio")
async def test_end_clears_participants_once(
    controller, db_session, club, admin_user, member_user
):
    meeting = await _active_meeting(controller, club, admin_user)
    await controller.join(meeting.meeting_id, member_user)

    ended = await controller.end(meeting.meeting_id, admin_user)
    ended_at = ended.ended_at
    assert ended.participant_ids == []

    with pytest.raises(InvalidStateError):
        await controller.end(meeting.meeting_id, admin_user)
    reloaded = controller.meetings.get_meeting(meeting.meeting_id)
    assert reloaded.ended_at == ended_at

    notices = [m.content for m in _system_messages(db_session, meeting.meeting_id)]
    assert notices == [
        "Bob Member joined the meeting",
        "Meeting ended by Alice Admin",
    ]


@pytest.mark.anyio("asyncio")
async def test_scheduled_meeting_cannot_be_joined_or_ended(
    controller, club, admin_user, member_user
):
    meeting = await controller.create(club.club_id, admin_user, "Later")
    with pytest.raises(InvalidStateError):
        await controller.join(meeting.meeting_id, member_user)
    with pytest.raises(InvalidStateError):
        await controller.end(meeting.meeting_id, admin_user)


@pytest.mark.anyio("asyncio")
async def test_join_twice_is_idempotent(controller, db_session, club, admin_user, member_user):
    meeting = await _active_meeting(controller, club, admin_user)
    await controller.join(meeting.meeting_id, member_user)
    again = await controller.join(meeting.meeting_id, member_user)

    assert again.participant_ids == [member_user.user_id]
    assert len(_system_messages(db_session, meeting.meeting_id)) == 1


@pytest.mark.anyio("asyncio")
async def test_join_requires_club_membership(controller, club, admin_user, outsider):
    meeting = await _active_meeting(controller, club, admin_user)
    with pytest.raises(AuthorizationError):
        await controller.join(meeting.meeting_id, outsider)


@pytest.mark.anyio("asyncio")
async def test_leave_for_non_participant_is_a_no_op(
    controller, db_session, club, admin_user, member_user
):
    meeting = await _active_meeting(controller, club, admin_user)

    result = await controller.leave(meeting.meeting_id, member_user)

    assert result.participant_ids == []
    assert _system_messages(db_session, meeting.meeting_id) == []


@pytest.mark.anyio("asyncio")
async def test_leave_removes_participant_and_announces(
    controller, db_session, club, admin_user, member_user, second_member
):
    meeting = await _active_meeting(controller, club, admin_user)
    await controller.join(meeting.meeting_id, member_user)
    await controller.join(meeting.meeting_id, second_member)

    result = await controller.leave(meeting.meeting_id, member_user)

    assert result.participant_ids == [second_member.user_id]
    notices = [m.content for m in _system_messages(db_session, meeting.meeting_id)]
    assert notices[-1] == "Bob Member left the meeting"


@pytest.mark.anyio("asyncio")
async def test_cancel_scheduled_meeting_is_silent(controller, db_session, club, admin_user):
    meeting = await controller.create(club.club_id, admin_user, "Maybe")

    cancelled = await controller.cancel(meeting.meeting_id, admin_user)

    assert cancelled.status == MeetingStatus.CANCELLED.value
    assert cancelled.ended_at is None
    assert _system_messages(db_session, meeting.meeting_id) == []
    with pytest.raises(InvalidStateError):
        await controller.start(meeting.meeting_id, admin_user)
    with pytest.raises(InvalidStateError):
        await controller.cancel(meeting.meeting_id, admin_user)


@pytest.mark.anyio("asyncio")
async def test_cancel_active_meeting_clears_room(
    controller, db_session, club, admin_user, member_user
):
    meeting = await _active_meeting(controller, club, admin_user)
    await controller.join(meeting.meeting_id, member_user)

    cancelled = await controller.cancel(meeting.meeting_id, admin_user)

    assert cancelled.participant_ids == []
    assert cancelled.ended_at is None
    notices = [m.content for m in _system_messages(db_session, meeting.meeting_id)]
    assert notices[-1] == "Meeting cancelled by Alice Admin"


@pytest.mark.anyio("asyncio")
async def test_gathered_joins_never_exceed_capacity(
    controller, db_session, club, admin_user, make_user
):
    clubs = ClubManager(db_session)
    hopefuls = []
    for index in range(6):
        user = make_user(f"guest{index}", "Guest", f"Number{index}")
        clubs.join_by_code(user, club.join_code)
        hopefuls.append(user)

    meeting = await _active_meeting(controller, club, admin_user, max_participants=3)

    results = await asyncio.gather(
        *(controller.join(meeting.meeting_id, user) for user in hopefuls),
        return_exceptions=True,
    )

    rejected = [r for r in results if isinstance(r, CapacityError)]
    assert len(rejected) == 3
    assert not [r for r in results if isinstance(r, Exception) and r not in rejected]
    reloaded = controller.meetings.get_meeting(meeting.meeting_id)
    assert len(reloaded.participant_ids) == 3


@pytest.mark.anyio("asyncio")
async def test_lifecycle_events_reach_meeting_and_club_rooms(
    controller, notifier, recording_socket, club, admin_user, member_user
):
    club_socket = recording_socket()
    room_socket = recording_socket()
    notifier.subscribe(club_room(club.club_id), ConnectionInfo(id="club-watch", websocket=club_socket))

    meeting = await controller.create(club.club_id, admin_user, "Evented")
    notifier.subscribe(
        meeting_room(meeting.meeting_id), ConnectionInfo(id="room-watch", websocket=room_socket)
    )
    await controller.start(meeting.meeting_id, admin_user)
    await controller.join(meeting.meeting_id, member_user)

    club_types = [(e["type"], e.get("action")) for e in club_socket.sent]
    assert club_types == [("meeting_update", "created"), ("meeting_update", "started")]

    room_types = [e["type"] for e in room_socket.sent]
    assert room_types == ["meeting_update", "join_meeting", "receive_message"]
    join_event = room_socket.sent[1]
    assert join_event["meetingId"] == meeting.meeting_id
    assert join_event["clubId"] == club.club_id
    assert join_event["userId"] == member_user.user_id
    assert join_event["payload"]["participants"] == [member_user.user_id]
    assert room_socket.sent[2]["payload"]["messageType"] == "system"


@pytest.mark.anyio("asyncio")
async def test_failed_delivery_does_not_fail_the_command(
    controller, notifier, recording_socket, club, admin_user
):
    meeting = await controller.create(club.club_id, admin_user, "Flaky watcher")
    notifier.subscribe(
        meeting_room(meeting.meeting_id),
        ConnectionInfo(id="broken", websocket=recording_socket(should_fail=True)),
    )

    started = await controller.start(meeting.meeting_id, admin_user)

    assert started.status == MeetingStatus.ACTIVE.value
    assert notifier.subscribers(meeting_room(meeting.meeting_id)) == {}


def test_threaded_joins_with_separate_sessions_respect_capacity(tmp_path, password_hash):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'joins.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    SessionFactory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    locks = MeetingLockRegistry()
    notifier = WebSocketManager()
    capacity, hopeful_count = 3, 8

    setup = SessionFactory()
    users = UserManager()
    users.set_db(setup)
    admin = users.add_user("host", password_hash, first_name="Host", last_name="Admin")
    clubs = ClubManager(setup)
    club = clubs.create_club(admin, "Threads")
    hopeful_ids = []
    for index in range(hopeful_count):
        guest = users.add_user(
            f"guest{index}", password_hash, first_name="Guest", last_name=f"Thread{index}"
        )
        clubs.join_by_code(guest, club.join_code)
        hopeful_ids.append(guest.user_id)
    controller = MeetingLifecycleController(setup, notifier=notifier, locks=locks)
    meeting = asyncio.run(
        controller.create(club.club_id, admin, "Crowded", max_participants=capacity)
    )
    meeting_id = meeting.meeting_id
    asyncio.run(controller.start(meeting_id, admin))
    setup.close()

    barrier = threading.Barrier(hopeful_count)
    outcomes = []
    outcomes_guard = threading.Lock()

    def attempt(user_id):
        session = SessionFactory()
        try:
            user = session.get(User, user_id)
            worker = MeetingLifecycleController(session, notifier=notifier, locks=locks)
            barrier.wait()
            try:
                asyncio.run(worker.join(meeting_id, user))
                outcome = "joined"
            except Exception as exc:  # noqa: BLE001
                outcome = exc
        finally:
            session.close()
        with outcomes_guard:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt, args=(uid,)) for uid in hopeful_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    check = SessionFactory()
    try:
        reloaded = MeetingLifecycleController(check).meetings.get_meeting(meeting_id)
        participants = reloaded.participant_ids
    finally:
        check.close()
        engine.dispose()

    assert len(outcomes) == hopeful_count
    assert outcomes.count("joined") == capacity
    rejected = [o for o in outcomes if isinstance(o, CapacityError)]
    assert len(rejected) == hopeful_count - capacity
    assert len(participants) == capacity
    assert len(set(participants)) == capacity
