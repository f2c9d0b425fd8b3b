import random
import string
import time
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Deque, Dict, List, Optional

from constants import CHAT_HISTORY_LIMIT, DEFAULT_ROOM_DURATION_MINUTES, ROOM_CAPACITY
from errors import FileNotFound, RoomAlreadyExists, RoomFull, RoomNotFound
from logging_config import get_logger
from schemas.messages import ChatMessage, SharedFile
from schemas.rooms import MemberView, Room
from schemas.users import Identity

logger = get_logger(__name__)


def generate_random_slug(length: int = 9) -> str:
    return ''.join(random.choices(string.ascii_lowercase + string.digits, k=length))


def generate_connection_id() -> str:
    return uuid.uuid4().hex


def generate_message_id() -> str:
    return f"{int(time.time() * 1000)}-{generate_random_slug(9)}"


def generate_file_id() -> str:
    return f"{generate_random_slug(9)}{int(time.time() * 1000):x}"


def now_millis() -> int:
    return int(time.time() * 1000)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MemoryBackend:
    """Single in-memory authority for identities, rooms, chat history and shared files.

    Every method is synchronous so a caller running on the event loop can chain
    several of them without another coroutine observing intermediate state.
    """

    def __init__(self, room_capacity: int = ROOM_CAPACITY, chat_history_limit: int = CHAT_HISTORY_LIMIT,
                 default_duration: int = DEFAULT_ROOM_DURATION_MINUTES):
        self.room_capacity = room_capacity
        self.chat_history_limit = chat_history_limit
        self.default_duration = default_duration
        self.users: Dict[str, Identity] = {}
        self.rooms: Dict[str, Room] = {}
        self.chat_messages: Dict[str, Deque[ChatMessage]] = {}
        self.shared_files: Dict[str, SharedFile] = {}
        logger.info(f"Initializing MemoryBackend (capacity={room_capacity}, history={chat_history_limit})")

    # Identity registry

    def register_user(self, connection_id: str) -> Identity:
        user = self.users.get(connection_id)
        if user is None:
            user = Identity.for_connection(connection_id)
            self.users[connection_id] = user
            logger.debug(f"Registered connection {connection_id}")
        return user

    def get_user(self, connection_id: str) -> Optional[Identity]:
        return self.users.get(connection_id)

    def update_user(self, connection_id: str, **changes) -> Optional[Identity]:
        user = self.users.get(connection_id)
        if user is None:
            logger.debug(f"Update skipped, connection {connection_id} not registered")
            return None
        for field, value in changes.items():
            setattr(user, field, value)
        return user

    def remove_user(self, connection_id: str) -> Optional[Identity]:
        user = self.users.pop(connection_id, None)
        if user is not None:
            logger.debug(f"Removed connection {connection_id}")
        return user

    # Room registry

    def generate_room_id(self) -> str:
        while True:
            room_id = f"room-{generate_random_slug(9)}"
            if room_id not in self.rooms:
                return room_id

    def create_room(self, creator_id: str, room_id: Optional[str] = None, duration: Optional[int] = None) -> Room:
        room_id = room_id or self.generate_room_id()
        if room_id in self.rooms:
            logger.warning(f"Room creation rejected: {room_id} already exists")
            raise RoomAlreadyExists(f"Room {room_id} already exists", roomId=room_id)
        duration = duration if duration and duration > 0 else self.default_duration

        room = Room(
            id=room_id,
            creator_id=creator_id,
            members=[creator_id],
            created_at=datetime.now(timezone.utc),
            duration_minutes=duration,
            remaining_seconds=duration * 60,
        )
        self.rooms[room_id] = room
        self.chat_messages[room_id] = deque(maxlen=self.chat_history_limit)
        logger.info(f"Room {room_id} created by {creator_id} for {duration} minutes")
        return room

    def get_room(self, room_id: Optional[str]) -> Optional[Room]:
        if not room_id:
            return None
        return self.rooms.get(room_id)

    def require_room(self, room_id: Optional[str]) -> Room:
        room = self.get_room(room_id)
        if room is None:
            raise RoomNotFound(f"Room {room_id} not found", roomId=room_id)
        return room

    def join_room(self, room_id: str, connection_id: str) -> Room:
        room = self.require_room(room_id)
        if room.has_member(connection_id):
            logger.debug(f"Connection {connection_id} already in room {room_id}")
            return room
        if len(room.members) >= self.room_capacity:
            logger.info(f"Join rejected: room {room_id} is full ({len(room.members)}/{self.room_capacity})")
            raise RoomFull(f"Room {room_id} is full", roomId=room_id)
        room.members.append(connection_id)
        logger.debug(f"Connection {connection_id} joined room {room_id} ({len(room.members)}/{self.room_capacity})")
        return room

    def rejoin_room(self, room_id: str, connection_id: str) -> Room:
        """Re-add a reconnecting member. Capacity is not enforced."""
        room = self.require_room(room_id)
        if not room.has_member(connection_id):
            room.members.append(connection_id)
        return room

    def leave_room(self, room_id: str, connection_id: str) -> Optional[Room]:
        """Remove a member. Returns the room, or None when it no longer exists."""
        room = self.get_room(room_id)
        if room is None:
            return None
        if room.has_member(connection_id):
            room.members.remove(connection_id)
            logger.debug(f"Connection {connection_id} removed from room {room_id}")
        if room.is_empty:
            self.delete_room(room_id)
            return None
        return room

    def delete_room(self, room_id: str) -> bool:
        room = self.rooms.pop(room_id, None)
        self.chat_messages.pop(room_id, None)
        dropped = [file_id for file_id, record in self.shared_files.items() if record.room_id == room_id]
        for file_id in dropped:
            del self.shared_files[file_id]
        if room is None:
            return False
        logger.info(f"Room {room_id} deleted (chat history cleared, {len(dropped)} files dropped)")
        return True

    def member_views(self, room_id: str, exclude: Optional[str] = None) -> List[MemberView]:
        room = self.get_room(room_id)
        if room is None:
            return []
        views = []
        for connection_id in room.members:
            if connection_id == exclude:
                continue
            user = self.users.get(connection_id)
            if user is not None:
                views.append(user.public_view())
        return views

    def has_active_rooms(self) -> bool:
        return any(room.remaining_seconds > 0 for room in self.rooms.values())

    # Chat history

    def add_chat_message(self, room_id: str, message: ChatMessage) -> ChatMessage:
        history = self.chat_messages.get(room_id)
        if history is None:
            # rooms always get their history at creation, anything else would be orphaned
            raise RoomNotFound(f"Room {room_id} not found", roomId=room_id)
        history.append(message)
        return message

    def get_chat_history(self, room_id: str) -> List[ChatMessage]:
        return list(self.chat_messages.get(room_id, ()))

    # File relay

    def store_file(self, record: SharedFile) -> SharedFile:
        self.shared_files[record.file_id] = record
        logger.info(f"Stored file {record.file_id} ({record.file_name}, {record.file_size} bytes) for room {record.room_id}")
        return record

    def get_file(self, file_id: str) -> SharedFile:
        record = self.shared_files.get(file_id)
        if record is None:
            raise FileNotFound(f"File {file_id} not found", fileId=file_id)
        return record

    def close(self):
        logger.info(f"Clearing MemoryBackend: {len(self.rooms)} rooms, {len(self.users)} users, {len(self.shared_files)} files")
        self.rooms.clear()
        self.chat_messages.clear()
        self.shared_files.clear()
        self.users.clear()
