"""
Per-guild runtime state for created voice channels.

Nothing here locks: every mutation happens while the owning guild's
``GuildRuntimeState.lock`` is held by the voice service.
"""

import asyncio
from collections.abc import Iterator
from dataclasses import dataclass, field

from .models import TrackedChannel
from .name_pool import NamePool


class ChannelLifecycleStore:
    """Channels created by the bot, keyed by channel id."""

    def __init__(self) -> None:
        self._channels: dict[int, TrackedChannel] = {}

    def track(self, channel: TrackedChannel) -> None:
        self._channels[channel.channel_id] = channel

    def get(self, channel_id: int) -> TrackedChannel | None:
        return self._channels.get(channel_id)

    def untrack(self, channel_id: int) -> TrackedChannel | None:
        """
        Drop the record and cancel its pending deletion timer, if any.

        Cancelling a timer that already fired is harmless; callers must not
        assume cancellation took effect.
        """
        record = self._channels.pop(channel_id, None)
        if record is not None and record.pending_deletion is not None:
            record.pending_deletion.cancel()
            record.pending_deletion = None
        return record

    def is_tracked(self, channel_id: int) -> bool:
        return channel_id in self._channels

    def pending_timers(self) -> list[asyncio.Task]:
        return [
            record.pending_deletion
            for record in self._channels.values()
            if record.pending_deletion is not None
        ]

    def __iter__(self) -> Iterator[TrackedChannel]:
        return iter(list(self._channels.values()))

    def __len__(self) -> int:
        return len(self._channels)


@dataclass
class GuildRuntimeState:
    guild_id: int
    name_pool: NamePool
    trigger_channel_id: int | None = None
    store: ChannelLifecycleStore = field(default_factory=ChannelLifecycleStore)
    # Serializes every handler and timer for this guild (FIFO)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class GuildRegistry:
    """Owns the runtime state of every attached guild."""

    def __init__(self) -> None:
        self._guilds: dict[int, GuildRuntimeState] = {}

    def attach(self, state: GuildRuntimeState) -> GuildRuntimeState:
        self._guilds[state.guild_id] = state
        return state

    def detach(self, guild_id: int) -> GuildRuntimeState | None:
        return self._guilds.pop(guild_id, None)

    def get(self, guild_id: int) -> GuildRuntimeState | None:
        return self._guilds.get(guild_id)

    def __contains__(self, guild_id: object) -> bool:
        return guild_id in self._guilds

    def __iter__(self) -> Iterator[GuildRuntimeState]:
        return iter(list(self._guilds.values()))

    def __len__(self) -> int:
        return len(self._guilds)
