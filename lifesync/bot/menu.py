"""
Menu expiry

A menu message that sits idle for `timeout_seconds` is deleted. Only the
message goes away: the conversation's dialogue and pending confirmation
are left exactly as they were.

Messages showing a password are deleted after a fixed delay with
delete_later(), independently of the menu timer.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog


logger = structlog.get_logger("lifesync.bot")

DeleteMessage = Callable[[int, int], Awaitable[object]]


class MenuExpiry:
    """
    One expiry timer per chat.

    Args:
        delete: Deletes message_id in chat_id (usually Bot.delete_message)
        timeout_seconds: Idle time before the menu is deleted
    """

    def __init__(self, delete: DeleteMessage, timeout_seconds: float = 60):
        self._delete = delete
        self.timeout_seconds = timeout_seconds
        self._timers: dict[int, tuple[int, asyncio.Task]] = {}
        self._one_shots: set[asyncio.Task] = set()

    def touch(self, chat_id: int, message_id: int) -> None:
        """(Re)start the timer for the menu message of a chat."""
        self.cancel(chat_id)
        task = asyncio.create_task(self._expire(chat_id, message_id))
        self._timers[chat_id] = (message_id, task)

    def cancel(self, chat_id: int) -> None:
        entry = self._timers.pop(chat_id, None)
        if entry is not None:
            entry[1].cancel()

    def menu_message(self, chat_id: int) -> Optional[int]:
        entry = self._timers.get(chat_id)
        return entry[0] if entry else None

    def delete_later(self, chat_id: int, message_id: int, delay_seconds: float) -> None:
        """Delete one message after `delay_seconds`, whatever the menu does."""
        task = asyncio.create_task(self._delete_after(chat_id, message_id, delay_seconds))
        self._one_shots.add(task)
        task.add_done_callback(self._one_shots.discard)

    async def _expire(self, chat_id: int, message_id: int) -> None:
        await asyncio.sleep(self.timeout_seconds)
        current = self._timers.get(chat_id)
        if current is not None and current[0] == message_id:
            del self._timers[chat_id]
        await self._delete_message(chat_id, message_id)

    async def _delete_after(self, chat_id: int, message_id: int, delay_seconds: float) -> None:
        await asyncio.sleep(delay_seconds)
        await self._delete_message(chat_id, message_id)

    async def _delete_message(self, chat_id: int, message_id: int) -> None:
        try:
            await self._delete(chat_id, message_id)
        except Exception as e:
            # Already deleted by the user, or too old to delete
            logger.info("message_delete_failed", chat_id=chat_id, message_id=message_id, error=str(e))
        else:
            logger.info("message_deleted", chat_id=chat_id, message_id=message_id)
