import pytest

from backend import MemoryBackend, generate_message_id
from errors import FileNotFound, RoomAlreadyExists, RoomFull, RoomNotFound
from schemas.messages import ChatMessage, SharedFile


def make_message(room_backend, room_id, n):
    return room_backend.add_chat_message(room_id, ChatMessage(
        id=generate_message_id(),
        sender_id="a",
        sender_name="A",
        body=f"message {n}",
        timestamp="2024-01-01T00:00:00.000Z",
    ))


def make_file(file_id, room_id=None):
    return SharedFile(
        file_id=file_id,
        file_name="notes.txt",
        file_size=5,
        file_type="text/plain",
        payload="aGVsbG8=",
        uploader_id="a",
        uploader_name="A",
        uploaded_at=1700000000000,
        room_id=room_id,
    )


def test_register_user_defaults_and_is_idempotent(backend):
    user = backend.register_user("abcdef123456")
    assert user.display_name == "User_abcdef12"
    assert user.room_id is None
    assert not user.is_creator and not user.hand_raised
    assert user.audio_enabled
    user.display_name = "Alice"
    assert backend.register_user("abcdef123456").display_name == "Alice"


def test_missing_user_lookups_are_noops(backend):
    assert backend.get_user("ghost") is None
    assert backend.update_user("ghost", display_name="x") is None
    assert backend.remove_user("ghost") is None


def test_create_room_with_generated_id(backend):
    backend.register_user("a")
    room = backend.create_room("a")
    assert room.id.startswith("room-")
    assert room.members == ["a"]
    assert room.duration_minutes == 60
    assert room.remaining_seconds == 3600
    assert backend.get_chat_history(room.id) == []


def test_create_room_rejects_active_id(backend):
    backend.create_room("a", room_id="r1", duration=5)
    with pytest.raises(RoomAlreadyExists):
        backend.create_room("b", room_id="r1")
    assert backend.get_room("r1").creator_id == "a"


def test_non_positive_duration_falls_back_to_default(backend):
    room = backend.create_room("a", room_id="r1", duration=0)
    assert room.duration_minutes == 60


def test_join_unknown_room(backend):
    with pytest.raises(RoomNotFound):
        backend.join_room("nope", "a")


def test_join_capacity():
    backend = MemoryBackend(room_capacity=10)
    backend.create_room("m0", room_id="r1")
    for i in range(1, 9):
        backend.join_room("r1", f"m{i}")
    assert len(backend.get_room("r1").members) == 9

    backend.join_room("r1", "m9")
    assert len(backend.get_room("r1").members) == 10

    with pytest.raises(RoomFull):
        backend.join_room("r1", "late")
    assert "late" not in backend.get_room("r1").members


def test_join_is_idempotent_even_when_full():
    backend = MemoryBackend(room_capacity=2)
    backend.create_room("a", room_id="r1")
    backend.join_room("r1", "b")
    backend.join_room("r1", "b")
    backend.rejoin_room("r1", "a")
    assert backend.get_room("r1").members == ["a", "b"]


def test_rejoin_skips_capacity_for_newcomers():
    backend = MemoryBackend(room_capacity=2)
    backend.create_room("a", room_id="r1")
    backend.join_room("r1", "b")
    with pytest.raises(RoomFull):
        backend.join_room("r1", "c")

    backend.rejoin_room("r1", "c")
    assert backend.get_room("r1").members == ["a", "b", "c"]


def test_membership_follows_joins_and_leaves(backend):
    backend.create_room("a", room_id="r1")
    for member in ("b", "c", "d"):
        backend.join_room("r1", member)
    backend.leave_room("r1", "c")
    backend.join_room("r1", "e")
    backend.leave_room("r1", "a")
    assert backend.get_room("r1").members == ["b", "d", "e"]


def test_last_leave_deletes_room_and_history(backend):
    backend.create_room("a", room_id="r1")
    backend.join_room("r1", "b")
    make_message(backend, "r1", 1)

    assert backend.leave_room("r1", "a") is not None
    assert backend.leave_room("r1", "b") is None
    assert backend.get_room("r1") is None
    assert "r1" not in backend.chat_messages
    with pytest.raises(RoomNotFound):
        backend.join_room("r1", "c")


def test_chat_history_is_bounded_fifo(backend):
    backend.create_room("a", room_id="r1")
    for n in range(101):
        make_message(backend, "r1", n)
    history = backend.get_chat_history("r1")
    assert len(history) == 100
    assert history[0].body == "message 1"
    assert history[-1].body == "message 100"
    assert [m.body for m in history] == [f"message {n}" for n in range(1, 101)]


def test_chat_message_for_missing_room_is_rejected(backend):
    with pytest.raises(RoomNotFound):
        make_message(backend, "nope", 1)
    assert "nope" not in backend.chat_messages


def test_file_store_round_trip(backend):
    stored = backend.store_file(make_file("f1"))
    assert backend.get_file("f1") == stored
    with pytest.raises(FileNotFound):
        backend.get_file("f2")


def test_deleting_room_drops_its_files(backend):
    backend.create_room("a", room_id="r1")
    backend.store_file(make_file("in-room", room_id="r1"))
    backend.store_file(make_file("no-room"))
    backend.delete_room("r1")
    assert "in-room" not in backend.shared_files
    assert "no-room" in backend.shared_files


def test_member_views_are_public_projection(backend):
    for conn_id in ("a", "b"):
        backend.register_user(conn_id)
    backend.update_user("a", display_name="Alice", is_creator=True, room_id="r1")
    backend.create_room("a", room_id="r1")
    backend.join_room("r1", "b")
    backend.join_room("r1", "gone")  # not registered, skipped in the projection

    views = [v.model_dump() for v in backend.member_views("r1")]
    assert views == [
        {"id": "a", "name": "Alice", "isCreator": True, "handRaised": False, "audioEnabled": True},
        {"id": "b", "name": "User_b", "isCreator": False, "handRaised": False, "audioEnabled": True},
    ]
    assert [v.id for v in backend.member_views("r1", exclude="a")] == ["b"]


def test_close_clears_everything(backend):
    backend.register_user("a")
    backend.create_room("a", room_id="r1")
    backend.store_file(make_file("f1"))
    backend.close()
    assert not backend.users and not backend.rooms and not backend.chat_messages and not backend.shared_files
