from typing import Optional

from pydantic import BaseModel

from schemas.rooms import MemberView


class Identity(BaseModel):
    id: str
    display_name: str
    room_id: Optional[str] = None
    is_creator: bool = False
    hand_raised: bool = False
    # Not changed by any event yet, still part of the member projection
    audio_enabled: bool = True

    @classmethod
    def for_connection(cls, connection_id: str) -> "Identity":
        return cls(id=connection_id, display_name=f"User_{connection_id[:8]}")

    def public_view(self) -> MemberView:
        return MemberView(
            id=self.id,
            name=self.display_name,
            isCreator=self.is_creator,
            handRaised=self.hand_raised,
            audioEnabled=self.audio_enabled,
        )

    def clear_room(self):
        self.room_id = None
        self.hand_raised = False
        self.is_creator = False
