"""Voice core configuration, resolved from config.yaml plus environment overrides."""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from utils.errors import ConfigurationError
from utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TRIGGER_CHANNEL_NAME = "🏴 Set Sail Together"
DEFAULT_CATEGORY_NAME = "🌊 Grand Line Voice Channels"
DEFAULT_DELETE_DELAY_MS = 5000


@dataclass
class VoiceSettings:
    trigger_channel_name: str
    category_name: str | None
    delete_delay_ms: int
    name_catalog: tuple[str, ...]

    @property
    def delete_delay(self) -> float:
        """Debounce duration in seconds."""
        return self.delete_delay_ms / 1000

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        environ: Mapping[str, str] | None = None,
    ) -> "VoiceSettings":
        """
        Build settings from the ``voice`` config section.

        Environment variables CREATE_CHANNEL_NAME, CATEGORY_NAME and
        DELETE_DELAY (milliseconds) take precedence over the YAML values.

        Raises:
            ConfigurationError: if the name catalog is empty.
        """
        environ = os.environ if environ is None else environ
        section = config.get("voice") or {}

        trigger = (
            environ.get("CREATE_CHANNEL_NAME")
            or section.get("trigger_channel_name")
            or DEFAULT_TRIGGER_CHANNEL_NAME
        )

        if "CATEGORY_NAME" in environ:
            category = environ["CATEGORY_NAME"] or None
        else:
            category = section.get("category_name", DEFAULT_CATEGORY_NAME) or None

        delay = _parse_delay(environ.get("DELETE_DELAY", section.get("delete_delay_ms")))

        catalog: list[str] = []
        for raw in section.get("name_catalog") or ():
            name = str(raw).strip()
            if name and name not in catalog:
                catalog.append(name)
        if not catalog:
            raise ConfigurationError("voice.name_catalog must contain at least one name")

        return cls(
            trigger_channel_name=str(trigger),
            category_name=category,
            delete_delay_ms=delay,
            name_catalog=tuple(catalog),
        )


def _parse_delay(raw: Any) -> int:
    if raw is None or raw == "":
        return DEFAULT_DELETE_DELAY_MS
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning(
            f"Invalid delete delay {raw!r}; using default {DEFAULT_DELETE_DELAY_MS}ms"
        )
        return DEFAULT_DELETE_DELAY_MS
    if value <= 0:
        logger.warning(
            f"Non-positive delete delay {value}; using default {DEFAULT_DELETE_DELAY_MS}ms"
        )
        return DEFAULT_DELETE_DELAY_MS
    return value
