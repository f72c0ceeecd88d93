"""
Voice service for dynamic "join to create" voice channels.

Every presence event and deletion timer for a guild runs under that guild's
lock, so handlers never interleave and see each other's effects in gateway
order.
"""

import asyncio
import random
from collections.abc import Coroutine
from typing import Any

from .base import BaseService
from .voice import (
    CategoryPlacer,
    ChannelProvisioner,
    ChannelReaper,
    GuildBootstrapper,
    GuildRegistry,
    GuildRuntimeState,
    Joined,
    Left,
    MovedBetween,
    NamePool,
    NoOp,
    ProvisionResult,
    VoicePlatform,
    VoicePresenceEvent,
    VoiceSettings,
    VoiceTransition,
    normalize,
)


class VoiceService(BaseService):
    """
    Creates a themed voice channel for each member who joins the trigger
    channel and removes it again once it has stayed empty for the
    configured delay.
    """

    def __init__(
        self,
        settings: VoiceSettings,
        platform: VoicePlatform,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__("voice")
        self.settings = settings
        self.platform = platform
        self._rng = rng
        self._background_tasks: set[asyncio.Task] = set()

        self.registry = GuildRegistry()
        self.placer = CategoryPlacer(platform, settings)
        self.reaper = ChannelReaper(platform, settings, spawn=self._spawn_background_task)
        self.provisioner = ChannelProvisioner(platform, self.placer, self.reaper)
        self.bootstrapper = GuildBootstrapper(platform, settings, self.placer)

    def _spawn_background_task(
        self, coro: Coroutine[Any, Any, Any], *, name: str
    ) -> asyncio.Task:
        """Create and track a background task with exception logging."""

        task = asyncio.create_task(coro, name=name)
        self._background_tasks.add(task)

        def _discard_and_log(t: asyncio.Task) -> None:
            self._background_tasks.discard(t)
            if t.cancelled():
                self.logger.debug(f"Background task {name} cancelled")
                return
            exc = t.exception()
            if exc:
                self.logger.error(f"Background task {name} failed", exc_info=exc)

        task.add_done_callback(_discard_and_log)
        return task

    async def _initialize_impl(self) -> None:
        self.logger.info(
            f"Trigger channel '{self.settings.trigger_channel_name}', "
            f"category '{self.settings.category_name}', "
            f"delete delay {self.settings.delete_delay_ms}ms, "
            f"{len(self.settings.name_catalog)} catalog names"
        )

    async def _shutdown_impl(self) -> None:
        """Cancel pending deletion timers; created channels are left in place."""
        await self.reaper.drain(list(self.registry))
        for task in list(self._background_tasks):
            task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    async def attach_guild(self, guild_id: int) -> bool:
        """
        Prepare a guild: create fresh runtime state, ensure the trigger
        channel exists and sweep stale channels.

        Events for the guild that arrive while this runs wait on the guild
        lock and are handled afterwards.

        Returns:
            True when the guild is attached (or already was).
        """
        if guild_id in self.registry:
            return True

        state = GuildRuntimeState(
            guild_id=guild_id,
            name_pool=NamePool(self.settings.name_catalog, self._rng),
        )
        async with state.lock:
            self.registry.attach(state)
            try:
                state.trigger_channel_id = await self.bootstrapper.on_guild_attach(guild_id)
            except Exception as e:
                self.registry.detach(guild_id)
                self.logger.exception(
                    "Failed to attach guild", extra={"guild_id": guild_id}, exc_info=e
                )
                return False

        self.logger.info(
            "Guild attached",
            extra={"guild_id": guild_id, "channel_id": state.trigger_channel_id},
        )
        return True

    async def detach_guild(self, guild_id: int) -> None:
        """Drop a guild's runtime state and cancel its pending timers."""
        state = self.registry.detach(guild_id)
        if state is None:
            return
        async with state.lock:
            await self.reaper.drain([state])
        self.logger.info("Guild detached", extra={"guild_id": guild_id})

    def get_state(self, guild_id: int) -> GuildRuntimeState | None:
        return self.registry.get(guild_id)

    async def handle_voice_presence_event(self, event: VoicePresenceEvent) -> None:
        """Apply one gateway voice-state update. Never raises."""
        transition = normalize(event)
        if isinstance(transition, NoOp):
            return

        state = self.registry.get(event.guild_id)
        if state is None:
            self.logger.debug(
                "Ignoring voice event for unattached guild",
                extra={"guild_id": event.guild_id, "user_id": event.member_id},
            )
            return

        async with state.lock:
            if self.registry.get(event.guild_id) is not state:
                # Detached (or re-attached) while this event was queued
                return
            try:
                await self._dispatch(transition, state, is_bot=event.is_bot)
            except Exception as e:
                self.logger.exception(
                    "Error handling voice transition",
                    extra={"guild_id": event.guild_id, "user_id": event.member_id},
                    exc_info=e,
                )

    async def _dispatch(
        self, transition: VoiceTransition, state: GuildRuntimeState, *, is_bot: bool
    ) -> None:
        if isinstance(transition, Joined):
            await self._on_entered(transition.member_id, transition.channel_id, state, is_bot)
        elif isinstance(transition, Left):
            await self._on_exited(transition.channel_id, state)
        elif isinstance(transition, MovedBetween):
            # Departure first, so leaving a channel for the trigger schedules its cleanup
            await self._on_exited(transition.from_channel_id, state)
            await self._on_entered(transition.member_id, transition.to_channel_id, state, is_bot)
        elif isinstance(transition, NoOp):
            return
        else:
            raise TypeError(f"Unhandled voice transition: {transition!r}")

    async def _on_entered(
        self, member_id: int, channel_id: int, state: GuildRuntimeState, is_bot: bool
    ) -> ProvisionResult | None:
        if channel_id == state.trigger_channel_id:
            if is_bot:
                return None
            return await self.provisioner.on_member_joined_trigger(member_id, state)
        if state.store.is_tracked(channel_id):
            self.reaper.on_channel_gained_member(channel_id, state)
        return None

    async def _on_exited(self, channel_id: int, state: GuildRuntimeState) -> None:
        if not state.store.is_tracked(channel_id):
            return
        count = await self.platform.get_channel_member_count(channel_id)
        if count is None:
            self._forget_channel(channel_id, state)
        elif count == 0:
            self.reaper.on_channel_became_empty(channel_id, state)

    def _forget_channel(self, channel_id: int, state: GuildRuntimeState) -> None:
        record = state.store.untrack(channel_id)
        if record is not None:
            state.name_pool.release(record.assigned_name)
            self.logger.info(
                "Forgot externally removed channel",
                extra={
                    "guild_id": state.guild_id,
                    "channel_id": channel_id,
                    "assigned_name": record.assigned_name,
                },
            )

    async def handle_channel_deleted(self, guild_id: int, channel_id: int) -> None:
        """React to a channel being deleted by anyone, including the bot itself."""
        state = self.registry.get(guild_id)
        if state is None:
            return

        async with state.lock:
            if state.store.is_tracked(channel_id):
                self._forget_channel(channel_id, state)
                return
            if channel_id != state.trigger_channel_id:
                return

            self.logger.warning(
                "Trigger channel was deleted; recreating it",
                extra={"guild_id": guild_id, "channel_id": channel_id},
            )
            state.trigger_channel_id = None
            try:
                state.trigger_channel_id = await self.bootstrapper.ensure_trigger_channel(guild_id)
            except Exception as e:
                self.logger.exception(
                    "Failed to recreate trigger channel",
                    extra={"guild_id": guild_id},
                    exc_info=e,
                )

    async def health_check(self) -> dict[str, Any]:
        """Return health information for the voice service."""
        base_health = await super().health_check()
        states = list(self.registry)
        return {
            **base_health,
            "guilds": len(states),
            "tracked_channels": sum(len(state.store) for state in states),
            "pending_deletions": sum(len(state.store.pending_timers()) for state in states),
        }
