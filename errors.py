class RelayError(Exception):
    """Base class for errors that are reported back to the requesting connection only."""

    notice = "error"

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.notice)
        self.details = details


class RoomNotFound(RelayError):
    notice = "room-not-found"


class RoomFull(RelayError):
    notice = "room-full"


class RoomAlreadyExists(RelayError):
    notice = "room-already-exists"


class FileNotFound(RelayError):
    notice = "file-not-found"
