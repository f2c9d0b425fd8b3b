from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    """A chat or system line as stored in a room's history and sent to clients."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    sender_id: str = Field(alias="userId")
    sender_name: str = Field(alias="userName")
    body: str = Field(alias="message")
    timestamp: str
    kind: Literal["text", "system"] = Field(default="text", alias="type")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class SharedFile(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    file_id: str = Field(alias="fileId")
    file_name: str = Field(alias="fileName")
    file_size: Optional[int] = Field(default=None, alias="fileSize")
    file_type: Optional[str] = Field(default=None, alias="fileType")
    payload: str = Field(alias="fileData")
    uploader_id: Optional[str] = Field(default=None, alias="userId")
    uploader_name: Optional[str] = Field(default=None, alias="userName")
    # epoch milliseconds
    uploaded_at: int = Field(alias="timestamp")
    room_id: Optional[str] = Field(default=None, exclude=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)

    def metadata(self) -> dict:
        return self.model_dump(by_alias=True, exclude={"payload"})
