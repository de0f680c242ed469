"""Bloom taxonomy configuration loader."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence


class BloomLevelConfigError(ValueError):
    """Raised when ``bloom_levels.json`` contains invalid data."""


@dataclass(frozen=True)
class BloomLevel:
    """Immutable representation of a Bloom level definition."""

    id: str
    label: str
    description: str
    mastery_score: float
    difficulty_weight: float


class BloomLevelRegistry:
    """Load the ordered Bloom taxonomy from ``bloom_levels.json``.

    File order is the taxonomy order: the first entry is the lowest
    cognitive demand (Remember), the last the highest (Create).
    """

    def __init__(self, path: str | Path | None = None) -> None:
        base_path = Path(__file__).resolve().parent
        self.path = Path(path) if path is not None else base_path / "bloom_levels.json"
        self._levels: List[BloomLevel] = []
        self.reload()

    # ------------------------------------------------------------------
    def reload(self) -> None:
        """Reload Bloom levels from disk and validate the structure."""

        if not self.path.exists():
            raise FileNotFoundError(f"Bloom levels file not found: {self.path}")

        with self.path.open("r", encoding="utf-8") as fh:
            raw = json.load(fh)

        if not isinstance(raw, list):
            raise BloomLevelConfigError("Bloom levels file must contain a JSON list")

        levels: List[BloomLevel] = []
        seen: set[str] = set()
        for idx, entry in enumerate(raw, start=1):
            if not isinstance(entry, dict):
                raise BloomLevelConfigError(f"Entry #{idx} must be a JSON object")

            if "id" not in entry or not str(entry["id"]).strip():
                raise BloomLevelConfigError(f"Entry #{idx} is missing a non-empty 'id'")
            if "label" not in entry or not str(entry["label"]).strip():
                raise BloomLevelConfigError(f"Entry #{idx} is missing a non-empty 'label'")

            level_id = str(entry["id"]).strip().upper()
            if level_id in seen:
                raise BloomLevelConfigError(f"Duplicate Bloom level id detected: {level_id}")
            seen.add(level_id)

            label = str(entry["label"]).strip()
            description = str(entry.get("description", "")).strip()
            mastery_score = self._parse_number(entry, "mastery_score", level_id, default=0.7)
            if not 0.0 <= mastery_score <= 1.0:
                raise BloomLevelConfigError(
                    f"Entry {level_id} mastery_score must be within [0, 1]"
                )
            difficulty_weight = self._parse_number(entry, "difficulty_weight", level_id, default=0.0)
            if difficulty_weight < 0:
                raise BloomLevelConfigError(
                    f"Entry {level_id} difficulty_weight may not be negative"
                )

            levels.append(
                BloomLevel(level_id, label, description, mastery_score, difficulty_weight)
            )

        if not levels:
            raise BloomLevelConfigError("Bloom levels file may not be empty")

        self._levels = levels

    @staticmethod
    def _parse_number(entry: dict, key: str, level_id: str, *, default: float) -> float:
        raw = entry.get(key)
        if raw is None or raw == "":
            return default
        try:
            return float(raw)
        except (TypeError, ValueError) as exc:
            raise BloomLevelConfigError(f"Entry {level_id} has non-numeric {key}") from exc

    # ------------------------------------------------------------------
    @property
    def levels(self) -> List[BloomLevel]:
        """Return a shallow copy of the known Bloom levels."""

        return list(self._levels)

    def sequence(self) -> Sequence[str]:
        """Return the Bloom level identifiers in ascending order."""

        return tuple(level.id for level in self._levels)

    def normalize(self, value: Optional[str]) -> Optional[str]:
        """Map ``"apply"``, ``"Apply"`` or ``"APPLY"`` onto the registered id."""

        if value is None:
            return None
        candidate = str(value).strip().upper()
        if not candidate:
            return None
        for level in self._levels:
            if level.id == candidate or level.label.upper() == candidate:
                return level.id
        return None

    def index(self, level_id: str) -> int:
        """Return the index of ``level_id`` in the ordered sequence."""

        normalized = self.normalize(level_id)
        for idx, level in enumerate(self._levels):
            if level.id == normalized:
                return idx
        raise ValueError(f"Unknown Bloom level: {level_id}")

    def get(self, level_id: str) -> Optional[BloomLevel]:
        """Fetch a Bloom level definition if it exists."""

        normalized = self.normalize(level_id)
        for level in self._levels:
            if level.id == normalized:
                return level
        return None

    def is_higher_order(self, level_id: str) -> bool:
        """``True`` for the upper half of the taxonomy (Analyze and above)."""

        return self.index(level_id) >= len(self._levels) // 2

    def label_map(self) -> dict[str, str]:
        return {level.id: level.label for level in self._levels}

    def weight_between(self, lower: int, upper: int) -> float:
        """Sum the difficulty weights of the levels in ``(lower, upper]``."""

        if upper <= lower:
            return 0.0
        return sum(level.difficulty_weight for level in self._levels[lower + 1 : upper + 1])

    # ------------------------------------------------------------------
    def __iter__(self) -> Iterable[BloomLevel]:
        return iter(self._levels)

    def __len__(self) -> int:
        return len(self._levels)


BLOOM_LEVELS = BloomLevelRegistry(os.getenv("BLOOM_LEVELS_PATH") or None)
"""Singleton registry used throughout the application."""
