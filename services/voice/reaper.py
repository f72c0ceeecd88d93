"""
Debounced deletion of empty bot-created voice channels.

A channel that becomes empty gets a deletion timer. Any member joining
before it fires cancels it; a further emptiness restarts it. When a timer
fires it re-acquires the guild lock and re-checks both that it is still the
channel's current timer and that the channel is still empty, so a stale or
duplicated firing never deletes an occupied channel.
"""

import asyncio
from collections.abc import Callable, Coroutine, Iterable
from typing import Any

from utils.errors import NotFoundError, PlatformError
from utils.logging import get_logger

from .platform import VoicePlatform
from .settings import VoiceSettings
from .store import GuildRuntimeState

logger = get_logger(__name__)

SpawnFn = Callable[..., asyncio.Task]


def _default_spawn(coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task:
    return asyncio.create_task(coro, name=name)


class ChannelReaper:
    def __init__(
        self,
        platform: VoicePlatform,
        settings: VoiceSettings,
        spawn: SpawnFn | None = None,
    ) -> None:
        self.platform = platform
        self.settings = settings
        self._spawn = spawn or _default_spawn
        # Timers that have been scheduled and not yet finished, fired or not,
        # mapped to the guild they belong to
        self._timers: dict[asyncio.Task, int] = {}

    def on_channel_became_empty(self, channel_id: int, state: GuildRuntimeState) -> bool:
        """Schedule (or restart) the deletion timer. Returns True if scheduled."""
        if channel_id == state.trigger_channel_id:
            return False
        record = state.store.get(channel_id)
        if record is None:
            return False

        if record.pending_deletion is not None:
            record.pending_deletion.cancel()

        task = self._spawn(
            self._run_timer(channel_id, state),
            name=f"voice.delete_timer.{channel_id}",
        )
        self._timers[task] = state.guild_id
        task.add_done_callback(self._discard_timer)
        record.pending_deletion = task

        logger.debug(
            f"Channel empty; deleting in {self.settings.delete_delay_ms}ms",
            extra={"guild_id": state.guild_id, "channel_id": channel_id},
        )
        return True

    def on_channel_gained_member(self, channel_id: int, state: GuildRuntimeState) -> bool:
        """Cancel a pending deletion timer. Returns True if one was cancelled."""
        record = state.store.get(channel_id)
        if record is None or record.pending_deletion is None:
            return False

        record.pending_deletion.cancel()
        record.pending_deletion = None
        logger.debug(
            "Member joined; deletion cancelled",
            extra={"guild_id": state.guild_id, "channel_id": channel_id},
        )
        return True

    async def _run_timer(self, channel_id: int, state: GuildRuntimeState) -> None:
        await asyncio.sleep(self.settings.delete_delay)
        async with state.lock:
            record = state.store.get(channel_id)
            if record is None or record.pending_deletion is not asyncio.current_task():
                # Superseded by a newer timer, or the channel is already gone
                return
            record.pending_deletion = None
            await self.on_delete_timer_fired(channel_id, state)

    async def on_delete_timer_fired(self, channel_id: int, state: GuildRuntimeState) -> bool:
        """
        Delete the channel if it is still tracked and still empty.

        Must be called while ``state.lock`` is held. Returns True when the
        record was removed from the store.
        """
        record = state.store.get(channel_id)
        if record is None:
            return False
        if record.pending_deletion is not None and record.pending_deletion is not asyncio.current_task():
            record.pending_deletion.cancel()
        record.pending_deletion = None

        log_extra = {
            "guild_id": state.guild_id,
            "channel_id": channel_id,
            "assigned_name": record.assigned_name,
        }

        count = await self.platform.get_channel_member_count(channel_id)
        if count is None:
            logger.info("Channel disappeared before deletion; forgetting it", extra=log_extra)
            self._forget(channel_id, state)
            return True
        if count > 0:
            logger.debug(f"Channel has {count} member(s); keeping it", extra=log_extra)
            return False

        try:
            await self.platform.delete_channel(channel_id, reason="Empty dynamic voice channel")
        except NotFoundError:
            logger.info("Channel was already deleted", extra=log_extra)
        except PlatformError as e:
            # Left tracked without a timer; the next emptiness retries
            logger.warning(f"Failed to delete empty channel: {e}", extra=log_extra)
            return False
        else:
            logger.info(f"Deleted empty voice channel '{record.assigned_name}'", extra=log_extra)

        self._forget(channel_id, state)
        return True

    def _forget(self, channel_id: int, state: GuildRuntimeState) -> None:
        record = state.store.untrack(channel_id)
        if record is not None:
            state.name_pool.release(record.assigned_name)

    def _discard_timer(self, task: asyncio.Task) -> None:
        self._timers.pop(task, None)

    async def drain(self, states: Iterable[GuildRuntimeState]) -> None:
        """
        Cancel the given guilds' timers that have not fired and wait for
        their in-flight ones. Other guilds' timers are left running.

        Channels whose timers are cancelled are left in place; nothing is
        force-deleted.
        """
        guild_ids = set()
        cancelled = 0
        for state in states:
            guild_ids.add(state.guild_id)
            for record in state.store:
                if record.pending_deletion is not None:
                    record.pending_deletion.cancel()
                    record.pending_deletion = None
                    cancelled += 1

        pending = [task for task, guild_id in self._timers.items() if guild_id in guild_ids]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if cancelled:
            logger.info(f"Cancelled {cancelled} pending channel deletion(s)")

    @property
    def active_timers(self) -> int:
        return len(self._timers)
