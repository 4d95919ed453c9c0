from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path


def _repo_root() -> Path:
    here = Path(__file__).resolve()
    # .../implementation/src/caveminer/config.py -> repo root is 3 levels up
    return here.parents[3]


def default_config_path() -> Path:
    override = os.environ.get("CAVEMINER_CONFIG")
    if override:
        return Path(override).resolve()
    return _repo_root() / "implementation" / "engine.json"


def default_save_path() -> Path:
    override = os.environ.get("CAVEMINER_SAVE_PATH")
    if override:
        return Path(override).resolve()
    return Path(__file__).resolve().parent.parent / "save.json"


@dataclass
class EngineConfig:
    # Passive income
    income_tick_interval: float = 0.05
    income_flush_ticks: int = 10
    display_interval: float = 0.1

    # Abilities and achievements
    ability_tick_interval: float = 1.0
    achievement_check_interval: float = 5.0

    # Debounced saves
    significant_save_delay: float = 3.0
    light_save_delay: float = 1.0
    max_save_wait: float = 30.0
    cloud_retry_delay: float = 30.0

    # Offline progress
    offline_min_seconds: int = 60
    offline_max_seconds: int = 24 * 60 * 60

    # Collaborator timeouts
    load_timeout: float = 10.0
    identity_timeout: float = 10.0

    storage_key: str = "gameState"
    save_path: str = ""


def load_config(path: Path | None = None) -> EngineConfig:
    if path is None:
        path = default_config_path()
    if not path.exists():
        return EngineConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"[engine] Error reading config {path}: {e}")
        return EngineConfig()
    try:
        return EngineConfig(**data)
    except TypeError as e:
        print(f"[engine] Ignoring config {path}: {e}")
        return EngineConfig()


def save_config(config: EngineConfig, path: Path | None = None) -> None:
    if path is None:
        path = default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(config), indent=2), encoding="utf-8")


def resolve_save_path(config: EngineConfig) -> Path:
    if config.save_path:
        return Path(config.save_path)
    return default_save_path()
