"""
Display-name pool for created voice channels.

Names are handed out without repeats until every catalog entry is in use;
the pool then resets and starts over. With a single-entry catalog this means
two live channels can share a name, which is accepted behavior.
"""

import random
from collections.abc import Iterable

from utils.errors import ConfigurationError


class NamePool:
    def __init__(self, catalog: Iterable[str], rng: random.Random | None = None) -> None:
        ordered: list[str] = []
        for name in catalog:
            if name not in ordered:
                ordered.append(name)
        if not ordered:
            raise ConfigurationError("Name catalog must not be empty")

        self._catalog: tuple[str, ...] = tuple(ordered)
        self._in_use: set[str] = set()
        self._rng = rng or random.Random()

    @property
    def catalog(self) -> tuple[str, ...]:
        return self._catalog

    @property
    def in_use(self) -> frozenset[str]:
        return frozenset(self._in_use)

    @property
    def available(self) -> list[str]:
        """Free names, in catalog order."""
        return [name for name in self._catalog if name not in self._in_use]

    def allocate(self) -> str:
        candidates = self.available
        if not candidates:
            self._in_use.clear()
            candidates = list(self._catalog)

        name = self._rng.choice(candidates)
        self._in_use.add(name)
        return name

    def release(self, name: str) -> None:
        self._in_use.discard(name)

    def __contains__(self, name: object) -> bool:
        return name in self._catalog

    def __len__(self) -> int:
        return len(self._catalog)
