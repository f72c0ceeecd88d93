"""
Dynamic voice-channel core: name pool, lifecycle store, provisioning,
debounced cleanup and startup bootstrap.
"""

from .bootstrap import GuildBootstrapper
from .models import (
    CREW_CAPABILITIES,
    OWNER_CAPABILITIES,
    PermissionGrant,
    ProvisionResult,
    ProvisionStage,
    TrackedChannel,
    VoiceChannelSnapshot,
)
from .name_pool import NamePool
from .placement import CategoryPlacement, CategoryPlacer
from .platform import DiscordVoicePlatform, VoicePlatform
from .provisioner import ChannelProvisioner
from .reaper import ChannelReaper
from .settings import VoiceSettings
from .store import ChannelLifecycleStore, GuildRegistry, GuildRuntimeState
from .transitions import (
    Joined,
    Left,
    MovedBetween,
    NoOp,
    VoicePresenceEvent,
    VoiceTransition,
    normalize,
)

__all__ = [
    "CREW_CAPABILITIES",
    "OWNER_CAPABILITIES",
    "CategoryPlacement",
    "CategoryPlacer",
    "ChannelLifecycleStore",
    "ChannelProvisioner",
    "ChannelReaper",
    "DiscordVoicePlatform",
    "GuildBootstrapper",
    "GuildRegistry",
    "GuildRuntimeState",
    "Joined",
    "Left",
    "MovedBetween",
    "NamePool",
    "NoOp",
    "PermissionGrant",
    "ProvisionResult",
    "ProvisionStage",
    "TrackedChannel",
    "VoiceChannelSnapshot",
    "VoicePlatform",
    "VoicePresenceEvent",
    "VoiceSettings",
    "VoiceTransition",
    "normalize",
]
