"""Static catalog definitions: rocks, pickaxes, miners, special upgrades,
abilities and achievements.

Entries are read from catalog_data.json beside this module. The loaded
tuples are the defaults a fresh snapshot starts from and the base that old
saves are merged onto (see save.py), so adding an entry here is enough for it
to appear in existing saves.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, TypeVar

from caveminer.types import (
    Ability,
    AbilityEffect,
    Achievement,
    AutoMiner,
    Rock,
    SpecialUpgrade,
    StatCategory,
    Upgrade,
)

T = TypeVar("T")


@dataclass(frozen=True)
class Catalog:
    rocks: Tuple[Rock, ...]
    upgrades: Tuple[Upgrade, ...]
    auto_miners: Tuple[AutoMiner, ...]
    special_upgrades: Tuple[SpecialUpgrade, ...]
    abilities: Tuple[Ability, ...]
    achievements: Tuple[Achievement, ...]


_CATALOG: Optional[Catalog] = None


def default_catalog_path() -> Path:
    return Path(__file__).resolve().parent / "catalog_data.json"


def _rock(entry: dict) -> Rock:
    return Rock(
        id=entry["id"],
        name=entry["name"],
        base_cpc=float(entry["base_cpc"]),
        cost=float(entry["cost"]),
        unlocked=bool(entry.get("unlocked", False)),
    )


def _upgrade(entry: dict) -> Upgrade:
    return Upgrade(
        id=entry["id"],
        name=entry["name"],
        cost=float(entry["cost"]),
        cpc_increase=float(entry["cpc_increase"]),
        owned=bool(entry.get("owned", False)),
        priority=int(entry.get("priority", 0)),
        max_tier=int(entry.get("max_tier", 3)),
        evolve_cost=float(entry.get("evolve_cost", 1.0)),
    )


def _auto_miner(entry: dict) -> AutoMiner:
    return AutoMiner(
        id=entry["id"],
        name=entry["name"],
        cost=float(entry["cost"]),
        cps=float(entry["cps"]),
        max_tier=int(entry.get("max_tier", 3)),
        evolve_cost=float(entry.get("evolve_cost", 1.0)),
    )


def _special_upgrade(entry: dict) -> SpecialUpgrade:
    return SpecialUpgrade(
        id=entry["id"],
        name=entry["name"],
        cost=float(entry["cost"]),
        stat=StatCategory[entry["stat"]],
        additive=float(entry.get("additive", 0.0)),
        multiplicative=float(entry.get("multiplicative", 1.0)),
        max_level=int(entry.get("max_level", 1)),
        cost_growth=float(entry.get("cost_growth", 2.0)),
    )


def _ability(entry: dict) -> Ability:
    return Ability(
        id=entry["id"],
        name=entry["name"],
        cost=float(entry["cost"]),
        cooldown=float(entry["cooldown"]),
        duration=float(entry["duration"]),
        effect=AbilityEffect[entry["effect"]],
        multiplier=float(entry["multiplier"]),
        upgrade_cost=float(entry["upgrade_cost"]),
        max_level=int(entry.get("max_level", 5)),
    )


def _achievement(entry: dict) -> Achievement:
    return Achievement(
        id=entry["id"],
        name=entry["name"],
        description=entry.get("description", ""),
        reward=float(entry.get("reward", 0.0)),
    )


def load_catalog(path: Optional[Path] = None) -> Catalog:
    """Parse a catalog file. Raises on a missing or malformed file: the engine
    cannot build a default snapshot without one."""
    if path is None:
        path = default_catalog_path()
    raw = json.loads(path.read_text(encoding="utf-8"))
    return Catalog(
        rocks=tuple(_rock(e) for e in raw.get("rocks", [])),
        upgrades=tuple(_upgrade(e) for e in raw.get("upgrades", [])),
        auto_miners=tuple(_auto_miner(e) for e in raw.get("auto_miners", [])),
        special_upgrades=tuple(_special_upgrade(e) for e in raw.get("special_upgrades", [])),
        abilities=tuple(_ability(e) for e in raw.get("abilities", [])),
        achievements=tuple(_achievement(e) for e in raw.get("achievements", [])),
    )


def get_catalog() -> Catalog:
    global _CATALOG
    if _CATALOG is None:
        _CATALOG = load_catalog()
    return _CATALOG


# ── Lookup helpers shared by every module that edits a catalog tuple ──

def find(entries: Tuple[T, ...], entry_id: str) -> Optional[T]:
    for entry in entries:
        if entry.id == entry_id:  # type: ignore[attr-defined]
            return entry
    return None


def replace_entry(entries: Tuple[T, ...], new_entry: T) -> Tuple[T, ...]:
    """Return a copy of entries with the item sharing new_entry's id swapped."""
    return tuple(
        new_entry if e.id == new_entry.id else e  # type: ignore[attr-defined]
        for e in entries
    )
