"""
Data structures shared by the dynamic voice-channel core.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

# Capability names mirror discord.Permissions attribute names.
OWNER_CAPABILITIES = frozenset({"view_channel", "connect", "manage_channels", "move_members"})
CREW_CAPABILITIES = frozenset({"view_channel", "connect"})


@dataclass
class TrackedChannel:
    """A voice channel created (and therefore owned) by the bot."""

    channel_id: int
    guild_id: int
    assigned_name: str
    owner_member_id: int
    # Present iff the channel is empty and scheduled for removal
    pending_deletion: asyncio.Task | None = field(default=None, repr=False, compare=False)


class PermissionGrant(NamedTuple):
    """Allow-list of capabilities for one member or role on a channel."""

    target_id: int
    target_type: str  # "member" or "role"
    allow: frozenset[str]


class VoiceChannelSnapshot(NamedTuple):
    channel_id: int
    name: str
    member_count: int


class ProvisionStage(Enum):
    IDLE = "idle"
    ALLOCATING = "allocating"
    CREATING = "creating"
    PLACING = "placing"
    REGISTERING = "registering"
    RELOCATING = "relocating"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ProvisionResult:
    """Outcome of a single provisioning attempt."""

    stage: ProvisionStage
    channel_id: int | None = None
    name: str | None = None
    error: str | None = None
    # Cosmetic or relocation problems that did not abort provisioning
    warnings: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.stage is ProvisionStage.DONE
