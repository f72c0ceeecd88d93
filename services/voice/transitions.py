"""
Voice-presence transitions.

Gateway updates are normalized once into one of four variants; the voice
service dispatches exhaustively over them.
"""

from typing import NamedTuple


class VoicePresenceEvent(NamedTuple):
    member_id: int
    guild_id: int
    previous_channel_id: int | None
    new_channel_id: int | None
    is_bot: bool = False


class Joined(NamedTuple):
    member_id: int
    guild_id: int
    channel_id: int


class Left(NamedTuple):
    member_id: int
    guild_id: int
    channel_id: int


class MovedBetween(NamedTuple):
    member_id: int
    guild_id: int
    from_channel_id: int
    to_channel_id: int


class NoOp(NamedTuple):
    member_id: int
    guild_id: int


VoiceTransition = Joined | Left | MovedBetween | NoOp


def normalize(event: VoicePresenceEvent) -> VoiceTransition:
    before, after = event.previous_channel_id, event.new_channel_id

    if before is None and after is not None:
        return Joined(event.member_id, event.guild_id, after)
    if before is not None and after is None:
        return Left(event.member_id, event.guild_id, before)
    if before is not None and after is not None and before != after:
        return MovedBetween(event.member_id, event.guild_id, before, after)
    # Mute/deafen toggles, reconnects to the same channel, or nothing at all
    return NoOp(event.member_id, event.guild_id)
