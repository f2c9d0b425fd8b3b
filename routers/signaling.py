"""
Signaling router: turns validated inbound events into registry mutations and
outbound deliveries.

Each handler finishes every mutation of the backend before its first
``await``, so handlers running for different connections on the same event
loop can never observe a half-applied change.
"""
import asyncio
from typing import Optional, Set, Tuple

from fastapi import WebSocket
from pydantic import ValidationError

import event_names
from backend import MemoryBackend, generate_file_id, generate_message_id, now_millis, utc_timestamp
from connections import ConnectionManager
from constants import JOIN_ANNOUNCE_DELAY_SECONDS, SYSTEM_SENDER_ID, SYSTEM_SENDER_NAME
from errors import RelayError
from logging_config import get_logger
from scheduler import RoomTimer
from schemas import events
from schemas.messages import ChatMessage, SharedFile
from schemas.rooms import Room
from schemas.users import Identity

logger = get_logger(__name__)

# (room_id, room after the member left, or None when it was deleted)
Departure = Tuple[str, Optional[Room]]


class SignalingRouter:
    def __init__(self, backend: MemoryBackend, connections: ConnectionManager, timer: RoomTimer,
                 join_announce_delay: float = JOIN_ANNOUNCE_DELAY_SECONDS):
        self.backend = backend
        self.connections = connections
        self.timer = timer
        self.join_announce_delay = join_announce_delay
        self._pending_announcements: Set[asyncio.Task] = set()
        self._handlers = {
            event_names.CREATE_ROOM: self.create_room,
            event_names.JOIN_ROOM: self.join_room,
            event_names.REJOIN_ROOM: self.rejoin_room,
            event_names.WEBRTC_SIGNAL: self.webrtc_signal,
            event_names.CHAT_MESSAGE: self.chat_message,
            event_names.SYSTEM_MESSAGE: self.system_message,
            event_names.UPDATE_USERNAME: self.update_username,
            event_names.TOGGLE_HAND: self.toggle_hand,
            event_names.SCREEN_SHARE_STATUS: self.screen_share_status,
            event_names.FILE_UPLOAD_START: self.file_upload_start,
            event_names.FILE_UPLOAD_PROGRESS: self.file_upload_progress,
            event_names.FILE_UPLOAD: self.file_upload,
            event_names.FILE_DOWNLOAD_REQUEST: self.file_download_request,
            event_names.LEAVE_ROOM: self.leave_room,
            event_names.PING: self.ping,
        }

    # Connection lifecycle

    def connect(self, connection_id: str, websocket: WebSocket) -> Identity:
        self.connections.register(connection_id, websocket)
        user = self.backend.register_user(connection_id)
        logger.info(f"Connection {connection_id} registered as {user.display_name}")
        return user

    async def disconnect(self, connection_id: str):
        """Run the leave path and drop the identity. Safe to call more than once."""
        if self.backend.get_user(connection_id) is None:
            return
        departure = self._detach(connection_id)
        self.backend.remove_user(connection_id)
        self.connections.unregister(connection_id)
        logger.info(f"Connection {connection_id} disconnected")
        await self._announce_departure(connection_id, departure)

    async def handle_frame(self, connection_id: str, raw: str):
        try:
            event = events.parse_event(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed frame from {connection_id}: {e.error_count()} validation errors")
            logger.debug(f"Malformed frame details: {e.errors(include_url=False)}")
            return
        await self.dispatch(connection_id, event)

    async def dispatch(self, connection_id: str, event: events.InboundEvent):
        if self.backend.get_user(connection_id) is None:
            logger.debug(f"Ignoring {event.event} from unregistered connection {connection_id}")
            return
        handler = self._handlers[event.event]
        logger.debug(f"Handling {event.event} from {connection_id}")
        try:
            await handler(connection_id, event.data)
        except RelayError as e:
            logger.info(f"{event.event} from {connection_id} rejected: {e}")
            await self.connections.send(connection_id, e.notice, e.details or None)

    async def close(self):
        for task in list(self._pending_announcements):
            task.cancel()
        if self._pending_announcements:
            await asyncio.gather(*self._pending_announcements, return_exceptions=True)
        self._pending_announcements.clear()

    # Room membership

    async def create_room(self, connection_id: str, data: events.CreateRoomPayload):
        user = self.backend.get_user(connection_id)
        room = self.backend.create_room(connection_id, room_id=data.room_id, duration=data.duration)
        departure = self._detach(connection_id) if user.room_id else None
        self.backend.update_user(
            connection_id,
            room_id=room.id,
            display_name=data.username or user.display_name,
            is_creator=True,
            hand_raised=False,
        )
        self.connections.join_group(room.id, connection_id)
        self.timer.ensure_running()

        await self._announce_departure(connection_id, departure)
        await self.connections.send(connection_id, event_names.ROOM_CREATED, {
            "roomId": room.id,
            "duration": room.duration_minutes,
        })
        await self.connections.send(connection_id, event_names.TIMER_UPDATE, {"timeRemaining": room.remaining_seconds})
        await self._broadcast_members(room.id)

    async def join_room(self, connection_id: str, data: events.JoinRoomPayload):
        user = self.backend.get_user(connection_id)
        current = self.backend.get_room(data.room_id)
        already_member = current is not None and current.has_member(connection_id)
        room = self.backend.join_room(data.room_id, connection_id)
        departure = self._detach(connection_id) if user.room_id and user.room_id != room.id else None
        self._enter(user, room, data.username)

        existing_users = [view.model_dump() for view in self.backend.member_views(room.id, exclude=connection_id)]
        chat_history = [message.to_wire() for message in self.backend.get_chat_history(room.id)]
        logger.info(f"User {connection_id} ({user.display_name}) joined room {room.id} ({len(room.members)} members)")

        await self._announce_departure(connection_id, departure)
        await self.connections.send(connection_id, event_names.ROOM_JOINED, {
            "roomId": room.id,
            "existingUsers": existing_users,
            "duration": room.duration_minutes,
            "timeRemaining": room.remaining_seconds,
            "chatHistory": chat_history,
        })
        await self._broadcast_members(room.id)
        if not already_member:
            await self._announce_joiner(connection_id, room.id)

    async def rejoin_room(self, connection_id: str, data: events.RejoinRoomPayload):
        user = self.backend.get_user(connection_id)
        room = self.backend.rejoin_room(data.room_id, connection_id)
        departure = self._detach(connection_id) if user.room_id and user.room_id != room.id else None
        self._enter(user, room, data.username)

        existing_users = [view.model_dump() for view in self.backend.member_views(room.id, exclude=connection_id)]
        chat_history = [message.to_wire() for message in self.backend.get_chat_history(room.id)]
        logger.info(f"User {connection_id} rejoined room {room.id}")

        await self._announce_departure(connection_id, departure)
        await self.connections.send(connection_id, event_names.REJOIN_SUCCESS, {
            "roomId": room.id,
            "existingUsers": existing_users,
            "chatHistory": chat_history,
        })
        await self._broadcast_members(room.id)

    async def leave_room(self, connection_id: str, data: events.LeaveRoomPayload):
        # always the room the identity is in, whatever the client names
        departure = self._detach(connection_id)
        if departure is None:
            logger.debug(f"Leave ignored, {connection_id} is not in a room")
            return
        await self._announce_departure(connection_id, departure)

    # Relay

    async def webrtc_signal(self, connection_id: str, data: events.WebRTCSignalPayload):
        if data.target == connection_id:
            logger.debug(f"Dropping WebRTC signal from {connection_id} addressed to itself")
            return
        payload = data.model_dump(by_alias=True)
        payload["sender"] = connection_id
        logger.debug(f"Relaying WebRTC signal from {connection_id} to {data.target}")
        await self.connections.send(data.target, event_names.WEBRTC_SIGNAL, payload)

    async def chat_message(self, connection_id: str, data: events.ChatMessagePayload):
        user = self.backend.get_user(connection_id)
        if self.backend.get_room(user.room_id) is None:
            logger.debug(f"Chat message from {connection_id} dropped, not in a room")
            return
        message = self.backend.add_chat_message(user.room_id, ChatMessage(
            id=generate_message_id(),
            sender_id=connection_id,
            sender_name=user.display_name,
            body=data.message,
            timestamp=utc_timestamp(),
            kind="text",
        ))
        logger.debug(f"Chat [{user.room_id}] {user.display_name}: {len(data.message)} chars")
        await self.connections.broadcast(user.room_id, event_names.CHAT_MESSAGE, message.to_wire())

    async def system_message(self, connection_id: str, data: events.SystemMessagePayload):
        room = self.backend.require_room(data.room_id)
        message = self.backend.add_chat_message(room.id, ChatMessage(
            id=generate_message_id(),
            sender_id=SYSTEM_SENDER_ID,
            sender_name=SYSTEM_SENDER_NAME,
            body=data.message,
            timestamp=utc_timestamp(),
            kind="system",
        ))
        await self.connections.broadcast(room.id, event_names.CHAT_MESSAGE, message.to_wire())

    async def update_username(self, connection_id: str, data: events.UpdateUsernamePayload):
        user = self.backend.get_user(connection_id)
        old_name = user.display_name
        self.backend.update_user(connection_id, display_name=data.new_username)
        logger.info(f"User {connection_id} renamed from {old_name} to {data.new_username}")
        if self.backend.get_room(user.room_id) is None:
            return
        await self.connections.broadcast(user.room_id, event_names.USERNAME_UPDATED, {
            "userId": connection_id,
            "newUsername": data.new_username,
            "oldUsername": old_name,
        }, exclude=connection_id)
        await self._broadcast_members(user.room_id)

    async def toggle_hand(self, connection_id: str, data: events.ToggleHandPayload):
        user = self.backend.get_user(connection_id)
        if self.backend.get_room(user.room_id) is None:
            return
        self.backend.update_user(connection_id, hand_raised=data.hand_raised)
        await self.connections.broadcast(user.room_id, event_names.USER_HAND_TOGGLED, {
            "userId": connection_id,
            "handRaised": data.hand_raised,
            "userName": user.display_name,
        }, exclude=connection_id)
        await self._broadcast_members(user.room_id)

    async def screen_share_status(self, connection_id: str, data: events.ScreenShareStatusPayload):
        await self.connections.broadcast(data.room_id, event_names.SCREEN_SHARE_STATUS, {
            "userId": data.user_id,
            "isSharing": data.is_sharing,
        }, exclude=connection_id)

    async def file_upload_start(self, connection_id: str, data: events.FileUploadStartPayload):
        await self.connections.broadcast(data.room_id, event_names.FILE_UPLOAD_STARTED, {
            "userId": data.user_id or connection_id,
            "fileName": data.file_name,
            "fileSize": data.file_size,
        }, exclude=connection_id)

    async def file_upload_progress(self, connection_id: str, data: events.FileUploadProgressPayload):
        await self.connections.broadcast(data.room_id, event_names.FILE_UPLOAD_PROGRESS, {
            "userId": data.user_id or connection_id,
            "fileName": data.file_name,
            "progress": data.progress,
        }, exclude=connection_id)

    async def file_upload(self, connection_id: str, data: events.FileUploadPayload):
        user = self.backend.get_user(connection_id)
        room = self.backend.get_room(data.room_id or user.room_id)
        record = self.backend.store_file(SharedFile(
            file_id=generate_file_id(),
            file_name=data.file_name,
            file_size=data.file_size,
            file_type=data.file_type,
            payload=data.file_data,
            uploader_id=data.user_id or connection_id,
            uploader_name=data.user_name or user.display_name,
            uploaded_at=now_millis(),
            room_id=room.id if room else None,
        ))
        if room is not None:
            await self.connections.broadcast(room.id, event_names.FILE_UPLOAD_COMPLETED, record.metadata())

    async def file_download_request(self, connection_id: str, data: events.FileDownloadRequestPayload):
        record = self.backend.get_file(data.file_id)
        logger.debug(f"Sending file {record.file_id} to {connection_id}")
        await self.connections.send(connection_id, event_names.FILE_DOWNLOAD_RESPONSE, record.to_wire())

    async def ping(self, connection_id: str, data: events.PingPayload):
        await self.connections.send(connection_id, event_names.PONG, {
            "timestamp": data.timestamp,
            "serverTime": now_millis(),
        })

    # Helpers

    def _enter(self, user: Identity, room: Room, username: Optional[str]):
        self.backend.update_user(
            user.id,
            room_id=room.id,
            display_name=username or user.display_name,
            is_creator=room.creator_id == user.id,
        )
        self.connections.join_group(room.id, user.id)

    def _detach(self, connection_id: str) -> Optional[Departure]:
        """Remove a connection from its current room without delivering anything."""
        user = self.backend.get_user(connection_id)
        if user is None or not user.room_id:
            return None
        room_id = user.room_id
        room = self.backend.leave_room(room_id, connection_id)
        self.connections.leave_group(room_id, connection_id)
        user.clear_room()
        if room is None:
            logger.info(f"User {connection_id} left room {room_id}, room is now empty and was removed")
        else:
            logger.info(f"User {connection_id} left room {room_id} ({len(room.members)} remaining)")
        return room_id, room

    async def _announce_departure(self, connection_id: str, departure: Optional[Departure]):
        if departure is None:
            return
        room_id, room = departure
        if room is None:
            return
        await self.connections.broadcast(room_id, event_names.USER_LEFT, {"userId": connection_id})
        await self._broadcast_members(room_id)

    async def _broadcast_members(self, room_id: str):
        members = [view.model_dump() for view in self.backend.member_views(room_id)]
        await self.connections.broadcast(room_id, event_names.USERS_LIST_UPDATED, members)

    async def _announce_joiner(self, connection_id: str, room_id: str):
        if self.join_announce_delay <= 0:
            await self._send_user_joined(connection_id, room_id)
            return
        task = asyncio.create_task(self._delayed_user_joined(connection_id, room_id))
        self._pending_announcements.add(task)
        task.add_done_callback(self._pending_announcements.discard)

    async def _delayed_user_joined(self, connection_id: str, room_id: str):
        await asyncio.sleep(self.join_announce_delay)
        await self._send_user_joined(connection_id, room_id)

    async def _send_user_joined(self, connection_id: str, room_id: str):
        user = self.backend.get_user(connection_id)
        if user is None or user.room_id != room_id:
            logger.debug(f"Skipping user-joined for {connection_id}, no longer in room {room_id}")
            return
        await self.connections.broadcast(room_id, event_names.USER_JOINED, {
            "userId": connection_id,
            "username": user.display_name,
        }, exclude=connection_id)
