"""
Services package for the Discord bot.

Services hold the bot's business logic; cogs only translate gateway events
into service calls.
"""

from .activity_log_service import ActivityLogService
from .base import BaseService
from .leveling_service import LevelingService
from .service_container import ServiceContainer
from .voice_service import VoiceService
from .voice_time_service import VoiceTimeService

__all__ = [
    "ActivityLogService",
    "BaseService",
    "LevelingService",
    "ServiceContainer",
    "VoiceService",
    "VoiceTimeService",
]
