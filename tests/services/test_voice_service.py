"""
Voice Service Tests

End-to-end behaviour of VoiceService over the in-memory platform: guild
attach, join-to-create, debounced cleanup, moves, external deletions and
shutdown.
"""

import asyncio
import random
from unittest.mock import AsyncMock

import pytest

from services.voice import VoicePresenceEvent, VoiceSettings
from services.voice_service import VoiceService
from tests.factories.config_factories import CATALOG, GUILD_ID
from utils.errors import PlatformError

ALICE = 1001
BOB = 1002


async def _attach(voice_service) -> int:
    assert await voice_service.attach_guild(GUILD_ID)
    return voice_service.get_state(GUILD_ID).trigger_channel_id


async def _join_trigger(voice_service, platform, member_id: int) -> int:
    """Member joins the trigger; returns the channel they were moved into."""
    state = voice_service.get_state(GUILD_ID)
    await voice_service.handle_voice_presence_event(
        platform.member_event(GUILD_ID, member_id, state.trigger_channel_id)
    )
    new_channel = platform.locations[member_id]
    assert new_channel != state.trigger_channel_id
    # The gateway echoes the bot's move back as a regular update
    await voice_service.handle_voice_presence_event(
        VoicePresenceEvent(member_id, GUILD_ID, state.trigger_channel_id, new_channel)
    )
    return new_channel


async def _wait_past_delay(voice_service, factor: float = 3) -> None:
    await asyncio.sleep(voice_service.settings.delete_delay * factor)


class TestGuildAttach:
    @pytest.mark.asyncio
    async def test_attach_creates_trigger_and_sweeps(self, voice_service, platform):
        stale = platform.add_voice_channel(GUILD_ID, CATALOG[0])

        trigger_id = await _attach(voice_service)

        assert platform.channels[trigger_id].name == voice_service.settings.trigger_channel_name
        assert stale not in platform.channels
        assert len(voice_service.get_state(GUILD_ID).store) == 0

    @pytest.mark.asyncio
    async def test_attach_is_idempotent(self, voice_service, platform):
        await _attach(voice_service)
        state = voice_service.get_state(GUILD_ID)

        assert await voice_service.attach_guild(GUILD_ID)
        assert voice_service.get_state(GUILD_ID) is state
        assert len(platform.calls_to("list_voice_channels")) == 1

    @pytest.mark.asyncio
    async def test_attach_failure_leaves_guild_detached(self, voice_service, platform):
        platform.fail("create_voice_channel", PlatformError("HTTP 500"))

        assert not await voice_service.attach_guild(GUILD_ID)
        assert voice_service.get_state(GUILD_ID) is None

    @pytest.mark.asyncio
    async def test_events_during_attach_run_after_bootstrap(self, voice_service, platform):
        trigger = platform.add_voice_channel(GUILD_ID, voice_service.settings.trigger_channel_name)
        event = platform.member_event(GUILD_ID, ALICE, trigger)

        attach = asyncio.create_task(voice_service.attach_guild(GUILD_ID))
        await asyncio.sleep(0)
        await voice_service.handle_voice_presence_event(event)
        await attach

        # The join was handled against the attached state and provisioned a channel
        assert len(voice_service.get_state(GUILD_ID).store) == 1

    @pytest.mark.asyncio
    async def test_events_for_unattached_guild_are_ignored(self, voice_service, platform):
        channel = platform.add_voice_channel(GUILD_ID, voice_service.settings.trigger_channel_name)

        await voice_service.handle_voice_presence_event(platform.member_event(GUILD_ID, ALICE, channel))

        assert platform.calls_to("create_voice_channel") == []


class TestJoinToCreate:
    @pytest.mark.asyncio
    async def test_join_create_leave_delete(self, voice_service, platform):
        await _attach(voice_service)
        state = voice_service.get_state(GUILD_ID)

        channel_id = await _join_trigger(voice_service, platform, ALICE)
        name = state.store.get(channel_id).assigned_name
        assert name in CATALOG
        assert name in state.name_pool.in_use

        await voice_service.handle_voice_presence_event(platform.member_event(GUILD_ID, ALICE, None))
        assert channel_id in platform.channels

        await _wait_past_delay(voice_service)

        assert channel_id not in platform.channels
        assert not state.store.is_tracked(channel_id)
        assert name not in state.name_pool.in_use

    @pytest.mark.asyncio
    async def test_quick_rejoin_keeps_channel(self, voice_service, platform):
        await _attach(voice_service)
        state = voice_service.get_state(GUILD_ID)
        channel_id = await _join_trigger(voice_service, platform, ALICE)

        await voice_service.handle_voice_presence_event(platform.member_event(GUILD_ID, ALICE, None))
        await voice_service.handle_voice_presence_event(platform.member_event(GUILD_ID, ALICE, channel_id))
        await _wait_past_delay(voice_service)

        assert channel_id in platform.channels
        assert state.store.get(channel_id).pending_deletion is None

    @pytest.mark.asyncio
    async def test_channel_with_remaining_member_is_kept(self, voice_service, platform):
        await _attach(voice_service)
        channel_id = await _join_trigger(voice_service, platform, ALICE)
        await voice_service.handle_voice_presence_event(platform.member_event(GUILD_ID, BOB, channel_id))

        await voice_service.handle_voice_presence_event(platform.member_event(GUILD_ID, ALICE, None))
        await _wait_past_delay(voice_service)

        assert channel_id in platform.channels

    @pytest.mark.asyncio
    async def test_move_from_own_channel_to_trigger(self, voice_service, platform):
        await _attach(voice_service)
        state = voice_service.get_state(GUILD_ID)
        first = await _join_trigger(voice_service, platform, ALICE)

        second = await _join_trigger(voice_service, platform, ALICE)

        assert first != second
        assert state.store.is_tracked(second)
        assert state.store.get(second).assigned_name != state.store.get(first).assigned_name

        await _wait_past_delay(voice_service)

        assert first not in platform.channels
        assert second in platform.channels

    @pytest.mark.asyncio
    async def test_bots_do_not_trigger_provisioning(self, voice_service, platform):
        trigger_id = await _attach(voice_service)

        await voice_service.handle_voice_presence_event(
            platform.member_event(GUILD_ID, 9999, trigger_id, is_bot=True)
        )

        assert len(voice_service.get_state(GUILD_ID).store) == 0

    @pytest.mark.asyncio
    async def test_leaving_the_trigger_channel_schedules_nothing(self, voice_service, platform):
        trigger_id = await _attach(voice_service)
        platform.connect(ALICE, trigger_id)

        await voice_service.handle_voice_presence_event(
            VoicePresenceEvent(ALICE, GUILD_ID, trigger_id, None)
        )

        assert trigger_id in platform.channels
        assert voice_service.get_state(GUILD_ID).store.pending_timers() == []

    @pytest.mark.asyncio
    async def test_handler_errors_are_contained(self, voice_service, platform):
        trigger_id = await _attach(voice_service)
        voice_service.provisioner.on_member_joined_trigger = AsyncMock(side_effect=RuntimeError("boom"))

        await voice_service.handle_voice_presence_event(platform.member_event(GUILD_ID, ALICE, trigger_id))

        # The guild lock was released despite the failure
        assert not voice_service.get_state(GUILD_ID).lock.locked()


class TestExternalChanges:
    @pytest.mark.asyncio
    async def test_externally_deleted_channel_is_forgotten(self, voice_service, platform):
        await _attach(voice_service)
        state = voice_service.get_state(GUILD_ID)
        channel_id = await _join_trigger(voice_service, platform, ALICE)
        name = state.store.get(channel_id).assigned_name

        platform.remove_channel(channel_id)
        await voice_service.handle_channel_deleted(GUILD_ID, channel_id)

        assert not state.store.is_tracked(channel_id)
        assert name not in state.name_pool.in_use

    @pytest.mark.asyncio
    async def test_deleted_trigger_is_recreated(self, voice_service, platform):
        trigger_id = await _attach(voice_service)

        platform.remove_channel(trigger_id)
        await voice_service.handle_channel_deleted(GUILD_ID, trigger_id)

        new_trigger = voice_service.get_state(GUILD_ID).trigger_channel_id
        assert new_trigger is not None
        assert new_trigger != trigger_id
        assert platform.channels[new_trigger].name == voice_service.settings.trigger_channel_name

    @pytest.mark.asyncio
    async def test_unrelated_channel_deletion_is_ignored(self, voice_service, platform):
        await _attach(voice_service)
        other = platform.add_voice_channel(GUILD_ID, "General")
        platform.remove_channel(other)

        await voice_service.handle_channel_deleted(GUILD_ID, other)

        assert len(platform.calls_to("create_voice_channel")) == 1


class TestShutdown:
    @pytest.mark.asyncio
    async def test_detach_cancels_timers_and_keeps_channels(self, voice_service, platform):
        await _attach(voice_service)
        channel_id = await _join_trigger(voice_service, platform, ALICE)
        await voice_service.handle_voice_presence_event(platform.member_event(GUILD_ID, ALICE, None))

        await voice_service.detach_guild(GUILD_ID)
        await _wait_past_delay(voice_service)

        assert voice_service.get_state(GUILD_ID) is None
        assert channel_id in platform.channels

    @pytest.mark.asyncio
    async def test_shutdown_drains_pending_timers(self, voice_service, platform):
        await _attach(voice_service)
        channel_id = await _join_trigger(voice_service, platform, ALICE)
        await voice_service.handle_voice_presence_event(platform.member_event(GUILD_ID, ALICE, None))

        await voice_service.shutdown()
        await _wait_past_delay(voice_service)

        assert channel_id in platform.channels
        assert voice_service.reaper.active_timers == 0
        assert platform.calls_to("delete_channel") == []

    @pytest.mark.asyncio
    async def test_health_check_counts(self, voice_service, platform):
        await _attach(voice_service)
        await _join_trigger(voice_service, platform, ALICE)

        health = await voice_service.health_check()

        assert health["status"] == "healthy"
        assert health["guilds"] == 1
        assert health["tracked_channels"] == 1
        assert health["pending_deletions"] == 0


async def _service_with_catalog(platform, catalog, delete_delay_ms: int = 50) -> VoiceService:
    settings = VoiceSettings(
        trigger_channel_name="🏴 Set Sail Together",
        category_name=None,
        delete_delay_ms=delete_delay_ms,
        name_catalog=tuple(catalog),
    )
    service = VoiceService(settings, platform, rng=random.Random(3))
    await service.initialize()
    return service


class TestSmallCatalogs:
    @pytest.mark.asyncio
    async def test_two_names_are_both_free_after_cleanup(self, platform):
        service = await _service_with_catalog(platform, ["Alpha", "Beta"])
        try:
            await _attach(service)
            state = service.get_state(GUILD_ID)
            channel_id = await _join_trigger(service, platform, ALICE)
            assert platform.channels[channel_id].name in {"Alpha", "Beta"}

            await service.handle_voice_presence_event(platform.member_event(GUILD_ID, ALICE, None))
            await _wait_past_delay(service)

            assert channel_id not in platform.channels
            assert state.name_pool.available == ["Alpha", "Beta"]
        finally:
            await service.shutdown()

    @pytest.mark.asyncio
    async def test_single_name_is_reissued_to_concurrent_channels(self, platform):
        service = await _service_with_catalog(platform, ["Alpha"])
        try:
            await _attach(service)
            first = await _join_trigger(service, platform, ALICE)
            second = await _join_trigger(service, platform, BOB)

            assert first != second
            assert platform.channels[first].name == "Alpha"
            assert platform.channels[second].name == "Alpha"
        finally:
            await service.shutdown()


class TestGuildIsolation:
    @pytest.mark.asyncio
    async def test_detach_does_not_wait_for_other_guilds_timers(self, platform):
        other_guild = GUILD_ID + 1
        service = await _service_with_catalog(platform, CATALOG, delete_delay_ms=2000)
        try:
            assert await service.attach_guild(GUILD_ID)
            assert await service.attach_guild(other_guild)
            other_state = service.get_state(other_guild)

            await service.handle_voice_presence_event(
                platform.member_event(other_guild, BOB, other_state.trigger_channel_id)
            )
            channel_id = platform.locations[BOB]
            await service.handle_voice_presence_event(
                VoicePresenceEvent(BOB, other_guild, other_state.trigger_channel_id, channel_id)
            )
            await service.handle_voice_presence_event(platform.member_event(other_guild, BOB, None))
            [timer] = other_state.store.pending_timers()

            await asyncio.wait_for(service.detach_guild(GUILD_ID), timeout=0.5)

            assert service.get_state(GUILD_ID) is None
            assert not timer.done()
            assert other_state.store.get(channel_id).pending_deletion is timer
        finally:
            await service.shutdown()
