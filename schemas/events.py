"""
Inbound WebSocket events.

Every frame a client sends is a JSON envelope ``{"event": "<name>", "data": {...}}``.
Each event name maps to exactly one envelope model below, and the union is
discriminated on ``event`` so a frame either validates into one concrete
variant or is rejected as a whole before it reaches the signaling router.
"""
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

import event_names


class EventPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateRoomPayload(EventPayload):
    room_id: Optional[str] = None
    username: Optional[str] = None
    duration: Optional[int] = None


class JoinRoomPayload(EventPayload):
    room_id: str
    username: Optional[str] = None


class RejoinRoomPayload(JoinRoomPayload):
    pass


class WebRTCSignalPayload(EventPayload):
    # offer / answer / candidate bodies are relayed untouched
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    target: str = Field(min_length=1)
    room_id: str = Field(min_length=1)


class ChatMessagePayload(EventPayload):
    message: str


class SystemMessagePayload(EventPayload):
    room_id: str = Field(min_length=1)
    message: str


class UpdateUsernamePayload(EventPayload):
    new_username: str = Field(min_length=1)


class ToggleHandPayload(EventPayload):
    hand_raised: bool


class ScreenShareStatusPayload(EventPayload):
    room_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    is_sharing: bool = False


class FileUploadStartPayload(EventPayload):
    room_id: str = Field(min_length=1)
    user_id: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None


class FileUploadProgressPayload(EventPayload):
    room_id: str = Field(min_length=1)
    user_id: Optional[str] = None
    file_name: Optional[str] = None
    progress: Optional[float] = None


class FileUploadPayload(EventPayload):
    file_name: str
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    file_data: str
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    room_id: Optional[str] = None


class FileDownloadRequestPayload(EventPayload):
    file_id: str = Field(min_length=1)


class LeaveRoomPayload(EventPayload):
    # a roomId sent by older clients is ignored, the current room is left
    pass


class PingPayload(EventPayload):
    timestamp: Optional[Any] = None


class Envelope(BaseModel):
    @field_validator("data", mode="before", check_fields=False)
    @classmethod
    def missing_data_is_empty(cls, value):
        return {} if value is None else value


class CreateRoomEvent(Envelope):
    event: Literal[event_names.CREATE_ROOM]
    data: CreateRoomPayload = Field(default_factory=CreateRoomPayload)


class JoinRoomEvent(Envelope):
    event: Literal[event_names.JOIN_ROOM]
    data: JoinRoomPayload


class RejoinRoomEvent(Envelope):
    event: Literal[event_names.REJOIN_ROOM]
    data: RejoinRoomPayload


class WebRTCSignalEvent(Envelope):
    event: Literal[event_names.WEBRTC_SIGNAL]
    data: WebRTCSignalPayload


class ChatMessageEvent(Envelope):
    event: Literal[event_names.CHAT_MESSAGE]
    data: ChatMessagePayload


class SystemMessageEvent(Envelope):
    event: Literal[event_names.SYSTEM_MESSAGE]
    data: SystemMessagePayload


class UpdateUsernameEvent(Envelope):
    event: Literal[event_names.UPDATE_USERNAME]
    data: UpdateUsernamePayload


class ToggleHandEvent(Envelope):
    event: Literal[event_names.TOGGLE_HAND]
    data: ToggleHandPayload


class ScreenShareStatusEvent(Envelope):
    event: Literal[event_names.SCREEN_SHARE_STATUS]
    data: ScreenShareStatusPayload


class FileUploadStartEvent(Envelope):
    event: Literal[event_names.FILE_UPLOAD_START]
    data: FileUploadStartPayload


class FileUploadProgressEvent(Envelope):
    event: Literal[event_names.FILE_UPLOAD_PROGRESS]
    data: FileUploadProgressPayload


class FileUploadEvent(Envelope):
    event: Literal[event_names.FILE_UPLOAD]
    data: FileUploadPayload


class FileDownloadRequestEvent(Envelope):
    event: Literal[event_names.FILE_DOWNLOAD_REQUEST]
    data: FileDownloadRequestPayload


class LeaveRoomEvent(Envelope):
    event: Literal[event_names.LEAVE_ROOM]
    data: LeaveRoomPayload = Field(default_factory=LeaveRoomPayload)


class PingEvent(Envelope):
    event: Literal[event_names.PING]
    data: PingPayload = Field(default_factory=PingPayload)


InboundEvent = Annotated[
    Union[
        CreateRoomEvent,
        JoinRoomEvent,
        RejoinRoomEvent,
        WebRTCSignalEvent,
        ChatMessageEvent,
        SystemMessageEvent,
        UpdateUsernameEvent,
        ToggleHandEvent,
        ScreenShareStatusEvent,
        FileUploadStartEvent,
        FileUploadProgressEvent,
        FileUploadEvent,
        FileDownloadRequestEvent,
        LeaveRoomEvent,
        PingEvent,
    ],
    Field(discriminator="event"),
]

inbound_event_adapter = TypeAdapter(InboundEvent)


def parse_event(raw: str) -> InboundEvent:
    """Validate one raw frame. Raises pydantic.ValidationError for bad JSON,
    unknown event names or missing/invalid fields."""
    return inbound_event_adapter.validate_json(raw)
