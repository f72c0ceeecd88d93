"""
Voice Package

Gateway listeners for dynamic voice channels, voice time and the voice
activity log.
"""

from .events import VoiceEvents

__all__ = ["VoiceEvents"]
