"""
Channel provisioning for members who join the trigger channel.

Stages: Idle -> Allocating -> Creating -> Placing -> Registering ->
Relocating -> Done. Only a Creating failure is terminal (Failed); problems in
later stages are logged and provisioning carries on.
"""

from typing import TYPE_CHECKING

from utils.errors import ConfigurationError, NotFoundError, PlatformError
from utils.logging import get_logger

from .models import (
    CREW_CAPABILITIES,
    OWNER_CAPABILITIES,
    PermissionGrant,
    ProvisionResult,
    ProvisionStage,
    TrackedChannel,
)
from .placement import CategoryPlacer
from .platform import VoicePlatform
from .store import GuildRuntimeState

if TYPE_CHECKING:
    from .reaper import ChannelReaper

logger = get_logger(__name__)


class ChannelProvisioner:
    def __init__(
        self,
        platform: VoicePlatform,
        placer: CategoryPlacer,
        reaper: "ChannelReaper",
    ) -> None:
        self.platform = platform
        self.placer = placer
        self.reaper = reaper

    def _grants(self, guild_id: int, member_id: int) -> list[PermissionGrant]:
        # The @everyone role shares the guild's id
        return [
            PermissionGrant(member_id, "member", OWNER_CAPABILITIES),
            PermissionGrant(guild_id, "role", CREW_CAPABILITIES),
        ]

    async def on_member_joined_trigger(
        self, member_id: int, state: GuildRuntimeState
    ) -> ProvisionResult:
        """Create a channel for ``member_id`` and move them into it.

        Must be called while ``state.lock`` is held.
        """
        guild_id = state.guild_id
        result = ProvisionResult(stage=ProvisionStage.IDLE)
        log_extra = {"guild_id": guild_id, "user_id": member_id}

        result.stage = ProvisionStage.ALLOCATING
        try:
            name = state.name_pool.allocate()
        except ConfigurationError as e:
            logger.error(f"Cannot allocate a channel name: {e}", extra=log_extra)
            result.stage = ProvisionStage.FAILED
            result.error = str(e)
            return result
        result.name = name

        result.stage = ProvisionStage.CREATING
        try:
            placement = await self.placer.resolve(guild_id)
            channel_id = await self.platform.create_voice_channel(
                guild_id,
                name,
                placement.category_id,
                self._grants(guild_id, member_id),
            )
        except PlatformError as e:
            # The name stays allocated: a half-created channel may still carry it
            logger.warning(
                f"Failed to create voice channel '{name}': {e}",
                extra={**log_extra, "assigned_name": name, "stage": result.stage.value},
            )
            result.stage = ProvisionStage.FAILED
            result.error = str(e)
            return result
        result.channel_id = channel_id
        log_extra["channel_id"] = channel_id
        if placement.degraded:
            result.warnings.append("created without category")

        result.stage = ProvisionStage.PLACING
        await self._place_after_trigger(channel_id, state, result)

        result.stage = ProvisionStage.REGISTERING
        state.store.track(
            TrackedChannel(
                channel_id=channel_id,
                guild_id=guild_id,
                assigned_name=name,
                owner_member_id=member_id,
            )
        )

        result.stage = ProvisionStage.RELOCATING
        await self._relocate(member_id, channel_id, state, result)

        result.stage = ProvisionStage.DONE
        logger.info(
            f"Provisioned voice channel '{name}'",
            extra={**log_extra, "assigned_name": name},
        )
        return result

    async def _place_after_trigger(
        self, channel_id: int, state: GuildRuntimeState, result: ProvisionResult
    ) -> None:
        if state.trigger_channel_id is None:
            return
        try:
            trigger_position = await self.platform.get_channel_position(state.trigger_channel_id)
            if trigger_position is None:
                return
            await self.platform.set_channel_position(channel_id, trigger_position + 1)
        except PlatformError as e:
            logger.warning(
                f"Could not position channel {channel_id}: {e}",
                extra={"guild_id": state.guild_id, "channel_id": channel_id},
            )
            result.warnings.append(f"positioning failed: {e}")

    async def _relocate(
        self,
        member_id: int,
        channel_id: int,
        state: GuildRuntimeState,
        result: ProvisionResult,
    ) -> None:
        log_extra = {"guild_id": state.guild_id, "user_id": member_id, "channel_id": channel_id}
        try:
            await self.platform.move_member(state.guild_id, member_id, channel_id)
            return
        except NotFoundError:
            logger.info("Member left before they could be moved", extra=log_extra)
            result.warnings.append("member left before move")
        except PlatformError as e:
            logger.warning(f"Could not move member into new channel: {e}", extra=log_extra)
            result.warnings.append(f"move failed: {e}")

        # Nobody will ever leave this channel, so hand it to the reaper now
        count = await self.platform.get_channel_member_count(channel_id)
        if count == 0:
            self.reaper.on_channel_became_empty(channel_id, state)
