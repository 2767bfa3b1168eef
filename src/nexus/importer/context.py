"""Per-run import state.

A fresh ImportContext is built for every run and handed to each component;
nothing here is module-level, so two runs can never see each other's maps.
"""

from __future__ import annotations

import random
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..config import DEFAULT_OBJECT_TYPE
from ..models import FileRecord

if TYPE_CHECKING:
    from .archive import ArchiveEntry


@dataclass
class ImportContext:
    """Identity map, asset map and counters for one import run."""

    existing_titles: frozenset[str] = frozenset()
    overwrite: bool = False
    default_type: str = DEFAULT_OBJECT_TYPE
    rng: random.Random = field(default_factory=random.SystemRandom)

    records: dict[str, FileRecord] = field(default_factory=dict)
    """Normalized path -> record, in scan order."""

    entries: dict[str, ArchiveEntry] = field(default_factory=dict)
    """Normalized path -> archive entry, for content files and assets."""

    asset_queue: list[str] = field(default_factory=list)
    """Asset paths waiting for a stored name, in scan order."""

    asset_map: dict[str, str] = field(default_factory=dict)
    """Normalized asset path -> stored name."""

    skipped_count: int = 0
    total_entries: int = 0

    observed_keys: dict[str, dict[str, None]] = field(default_factory=dict)
    """Type -> metadata keys seen on documents of that type (insertion ordered)."""

    @classmethod
    def create(
        cls,
        existing_titles: Iterable[str] | None = None,
        overwrite: bool = False,
        default_type: str | None = None,
        seed: int | None = None,
    ) -> ImportContext:
        rng = random.Random(seed) if seed is not None else random.SystemRandom()
        return cls(
            existing_titles=frozenset(existing_titles or ()),
            overwrite=overwrite,
            default_type=default_type or DEFAULT_OBJECT_TYPE,
            rng=rng,
        )

    def new_id(self) -> str:
        """Mint an object identity (UUID4 drawn from the run's RNG)."""
        return str(uuid.UUID(int=self.rng.getrandbits(128), version=4))

    def new_token(self) -> str:
        return uuid.UUID(int=self.rng.getrandbits(128), version=4).hex

    def new_color(self) -> str:
        return f"#{self.rng.randrange(0x1000000):06x}"

    def observe_keys(self, type_name: str, keys: Iterable[str]) -> None:
        seen = self.observed_keys.setdefault(type_name, {})
        for key in keys:
            seen.setdefault(key, None)
