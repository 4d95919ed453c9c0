"""Snapshot encoding, local stores, and export/import.

Snapshot: flat JSON of GameState with snake_case keys. Catalog entries are
saved as their id plus the fields that change in play, and restored by
merging onto the current catalog defaults, so entries added after a save was
written appear with their defaults and saved ids that no longer exist are
skipped.

Local stores: MemoryStore (tests, headless runs) and JsonFileStore (one JSON
file per key, written atomically with tmp + rename).

Export: base64 of the compact snapshot JSON.
Import: accepts raw JSON or base64-JSON.
"""
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import replace
from pathlib import Path
from typing import Dict, Optional, Tuple

from caveminer.catalog import Catalog, find, get_catalog
from caveminer.derived import recompute
from caveminer.errors import LocalStoreError, SnapshotDecodeError
from caveminer.state import COMBO_WINDOW, DEFAULT_PICKAXE, DEFAULT_ROCK, GameState

SCHEMA_VERSION = 1

# Per catalog: the fields a save carries besides the id.
_PROGRESS_FIELDS: Dict[str, Tuple[str, ...]] = {
    "rocks": ("unlocked",),
    "upgrades": ("owned", "tier"),
    "auto_miners": ("quantity", "cost", "tier"),
    "special_upgrades": ("level", "cost"),
    "achievements": ("unlocked", "shown"),
    "abilities": (
        "owned",
        "level",
        "multiplier",
        "upgrade_cost",
        "active",
        "time_remaining",
        "cooldown_remaining",
    ),
}

_SCALARS: Dict[str, type] = {
    "coins": float,
    "total_coins_earned": float,
    "gold_coins": float,
    "total_clicks": int,
    "click_progress": int,
    "rebirths": int,
    "bonus_multiplier": float,
    "selected_rock": str,
    "selected_pickaxe": str,
    "sound_enabled": bool,
    "haptics_enabled": bool,
    "notifications_enabled": bool,
    "offline_progress_enabled": bool,
    "last_saved": float,
    "version": int,
}


def build_save_dict(state: GameState) -> dict:
    """Build a JSON-serializable dict from a snapshot."""
    data: dict = {"schema": SCHEMA_VERSION}
    for name in _SCALARS:
        data[name] = getattr(state, name)
    for catalog_name, fields in _PROGRESS_FIELDS.items():
        entries = []
        for entry in getattr(state, catalog_name):
            item = {"id": entry.id}
            for f in fields:
                item[f] = getattr(entry, f)
            entries.append(item)
        data[catalog_name] = entries
    return data


def _coerce(kind: type, value):
    if kind is bool:
        if not isinstance(value, bool):
            raise TypeError(f"expected bool, got {type(value).__name__}")
        return value
    if kind is str:
        if not isinstance(value, str):
            raise TypeError(f"expected str, got {type(value).__name__}")
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected number, got {type(value).__name__}")
    return kind(value)


def _merge_catalog(defaults: tuple, saved, catalog_name: str) -> tuple:
    if not isinstance(saved, list):
        return defaults
    fields = _PROGRESS_FIELDS[catalog_name]
    merged = {entry.id: entry for entry in defaults}
    for item in saved:
        if not isinstance(item, dict):
            continue
        entry_id = item.get("id")
        base = merged.get(entry_id)
        if base is None:
            print(f"[save] Warning: unknown {catalog_name} entry '{entry_id}', skipping")
            continue
        changes = {}
        for f in fields:
            if f not in item:
                continue
            value = item[f]
            current = getattr(base, f)
            if value is None:
                if f in ("time_remaining", "cooldown_remaining"):
                    changes[f] = None
                continue
            changes[f] = _coerce(type(current) if current is not None else float, value)
        merged[entry_id] = replace(base, **changes)
    return tuple(merged[entry.id] for entry in defaults)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def _normalize(state: GameState) -> GameState:
    """Repair cross-field invariants a hand-edited or older save may break."""
    state = replace(
        state,
        upgrades=tuple(replace(u, tier=_clamp(u.tier, 0, u.max_tier)) for u in state.upgrades),
        auto_miners=tuple(
            replace(m, quantity=max(0, m.quantity), tier=_clamp(m.tier, 0, m.max_tier))
            for m in state.auto_miners
        ),
        special_upgrades=tuple(
            replace(s, level=_clamp(s.level, 0, s.max_level)) for s in state.special_upgrades
        ),
    )

    abilities = []
    for a in state.abilities:
        a = replace(a, level=_clamp(a.level, 1, a.max_level))
        if not a.owned:
            a = replace(a, active=False, time_remaining=None, cooldown_remaining=None)
        elif a.active:
            remaining = a.time_remaining if a.time_remaining and a.time_remaining > 0 else a.duration
            a = replace(a, time_remaining=remaining, cooldown_remaining=None)
        else:
            cooldown = a.cooldown_remaining if a.cooldown_remaining and a.cooldown_remaining > 0 else None
            a = replace(a, time_remaining=None, cooldown_remaining=cooldown)
        abilities.append(a)
    state = replace(state, abilities=tuple(abilities))

    rock = state.rock(state.selected_rock)
    if rock is None or not rock.unlocked:
        state = replace(state, selected_rock=DEFAULT_ROCK)
    pickaxe = state.upgrade(state.selected_pickaxe)
    if pickaxe is None or not pickaxe.owned:
        owned = [u for u in state.upgrades if u.owned]
        best = max(owned, key=lambda u: u.priority).id if owned else DEFAULT_PICKAXE
        state = replace(state, selected_pickaxe=best)

    return replace(
        state,
        coins=max(0.0, state.coins),
        total_coins_earned=max(state.total_coins_earned, 0.0),
        click_progress=state.click_progress % COMBO_WINDOW if state.click_progress >= 0 else 0,
    )


def restore_from_dict(data: dict, catalog: Optional[Catalog] = None) -> GameState:
    """Rebuild a snapshot from a save dict. Raises SnapshotDecodeError."""
    if not isinstance(data, dict):
        raise SnapshotDecodeError("snapshot is not a JSON object")
    if catalog is None:
        catalog = get_catalog()
    try:
        scalars = {}
        for name, kind in _SCALARS.items():
            if name in data and data[name] is not None:
                scalars[name] = _coerce(kind, data[name])
        state = GameState(
            rocks=_merge_catalog(catalog.rocks, data.get("rocks"), "rocks"),
            upgrades=_merge_catalog(catalog.upgrades, data.get("upgrades"), "upgrades"),
            auto_miners=_merge_catalog(catalog.auto_miners, data.get("auto_miners"), "auto_miners"),
            special_upgrades=_merge_catalog(
                catalog.special_upgrades, data.get("special_upgrades"), "special_upgrades"
            ),
            achievements=_merge_catalog(catalog.achievements, data.get("achievements"), "achievements"),
            abilities=_merge_catalog(catalog.abilities, data.get("abilities"), "abilities"),
            **scalars,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise SnapshotDecodeError(f"error restoring save data: {e}") from e
    if find(state.rocks, DEFAULT_ROCK) is not None:
        rocks = tuple(replace(r, unlocked=True) if r.id == DEFAULT_ROCK else r for r in state.rocks)
        state = replace(state, rocks=rocks)
    return recompute(_normalize(state))


def encode_snapshot(state: GameState) -> bytes:
    return json.dumps(build_save_dict(state), separators=(",", ":")).encode("utf-8")


def decode_snapshot(raw: bytes) -> GameState:
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SnapshotDecodeError(f"error parsing save data: {e}") from e
    return restore_from_dict(data)


def snapshot_last_saved(raw: bytes) -> float:
    """Timestamp of an encoded snapshot without rebuilding the whole state."""
    try:
        data = json.loads(raw.decode("utf-8"))
        return float(data.get("last_saved", 0.0))
    except (UnicodeDecodeError, json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
        raise SnapshotDecodeError(f"error parsing save data: {e}") from e


# ── Export / import ──────────────────────────────────────────────────

def export_text(state: GameState) -> str:
    return base64.b64encode(encode_snapshot(state)).decode("ascii")


def _looks_like_save(data) -> bool:
    return isinstance(data, dict) and ("schema" in data or "coins" in data)


def import_text(text: str) -> Optional[GameState]:
    """Parse export text or a raw save. Returns None when it is neither."""
    text = text.strip()
    data = None
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        pass

    if not _looks_like_save(data):
        try:
            raw = base64.b64decode(text, validate=True)
            data = json.loads(raw.decode("utf-8"))
        except (binascii.Error, ValueError, UnicodeDecodeError):
            return None
    if not _looks_like_save(data):
        return None

    try:
        return restore_from_dict(data)
    except SnapshotDecodeError as e:
        print(f"[save] Could not import save: {e}")
        return None


# ── Local stores ─────────────────────────────────────────────────────

class LocalStore:
    """Key -> bytes storage on this device. Raises LocalStoreError."""

    def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def set(self, key: str, value: bytes) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(LocalStore):
    def __init__(self) -> None:
        self.data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self.data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self.data[key] = bytes(value)

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStore(LocalStore):
    """One file per key under a directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[bytes]:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            raise LocalStoreError(f"error reading {path}: {e}") from e

    def set(self, key: str, value: bytes) -> None:
        path = self.path_for(key)
        tmp_path = path.with_suffix(".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(value)
            tmp_path.replace(path)
        except OSError as e:
            raise LocalStoreError(f"error writing {path}: {e}") from e

    def remove(self, key: str) -> None:
        path = self.path_for(key)
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            raise LocalStoreError(f"error removing {path}: {e}") from e
