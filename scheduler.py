import asyncio
from typing import Optional

import event_names
from backend import MemoryBackend
from connections import ConnectionManager
from constants import TIMER_TICK_SECONDS
from logging_config import get_logger

logger = get_logger(__name__)


class RoomTimer:
    """One process-wide countdown shared by every room.

    The loop only runs while at least one room still has time left and is
    started again by ``ensure_running`` when the next room is created.
    """

    def __init__(self, backend: MemoryBackend, connections: ConnectionManager, period: float = TIMER_TICK_SECONDS):
        self.backend = backend
        self.connections = connections
        self.period = period
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def ensure_running(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info("Room timer started")

    async def stop(self):
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Room timer cancelled")

    async def _run(self):
        try:
            while True:
                await asyncio.sleep(self.period)
                active = await self.tick()
                # a room may have been created while this tick was delivering
                if not active and not self.backend.has_active_rooms():
                    logger.info("Room timer stopped (no active rooms)")
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Room timer crashed: {e}", exc_info=True)
        finally:
            if self._task is asyncio.current_task():
                self._task = None

    async def tick(self) -> bool:
        """Advance every room by one second. Returns True when any room was still counting."""
        updates = []
        ended = []
        # all state changes happen before the first await
        for room in list(self.backend.rooms.values()):
            if room.remaining_seconds <= 0:
                continue
            room.remaining_seconds -= 1
            members = self.connections.group_members(room.id)
            updates.append((members, room.remaining_seconds))
            if room.remaining_seconds == 0:
                ended.append((room.id, members))
                self.evict(room.id)

        for members, remaining in updates:
            await self.connections.send_many(members, event_names.TIMER_UPDATE, {"timeRemaining": remaining})
        for room_id, members in ended:
            logger.info(f"Time ended for room {room_id}, {len(members)} members released")
            await self.connections.send_many(members, event_names.ROOM_TIME_ENDED)
        return bool(updates)

    def evict(self, room_id: str):
        room = self.backend.get_room(room_id)
        if room is None:
            return
        for connection_id in list(room.members):
            self.connections.leave_group(room_id, connection_id)
            user = self.backend.get_user(connection_id)
            if user is not None and user.room_id == room_id:
                user.clear_room()
        self.backend.delete_room(room_id)
