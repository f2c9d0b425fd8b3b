from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class Room(BaseModel):
    id: str
    creator_id: str
    members: List[str] = Field(default_factory=list)
    created_at: datetime
    duration_minutes: int
    remaining_seconds: int

    @property
    def is_empty(self) -> bool:
        return not self.members

    def has_member(self, connection_id: str) -> bool:
        return connection_id in self.members


class MemberView(BaseModel):
    """Public projection of a room member, the only user data broadcast to a room."""
    id: str
    name: str
    isCreator: bool
    handRaised: bool
    audioEnabled: bool


class HealthResponse(BaseModel):
    status: str
    rooms: int
    users: int
    timestamp: str


class ServiceBanner(BaseModel):
    message: str
    version: str
    timestamp: str
