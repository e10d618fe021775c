"""
Dashboard profile loading.

A profile is a directory under profiles/ holding a config.yaml. The
directory is found by walking up from this package, or taken from
OPSBOARD_PROFILES_DIR when set. Parsed profiles are cached per resolved
file path for the life of the process.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from core.config.schema import DashboardConfig
from core.exceptions import ProfileConfigError

PROFILE_FILE = "config.yaml"

_cache: dict[Path, DashboardConfig] = {}


def find_profiles_dir() -> Path:
    """Directory holding one sub-directory per profile."""
    override = os.environ.get("OPSBOARD_PROFILES_DIR")
    if override:
        return Path(override)
    here = Path(__file__).resolve()
    for ancestor in here.parents:
        if (ancestor / "profiles").is_dir():
            return ancestor / "profiles"
    raise FileNotFoundError(
        "No profiles/ directory above core/; set OPSBOARD_PROFILES_DIR"
    )


def _read_profile(profile_id: str, path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ProfileConfigError(
            f"{path} is not valid YAML",
            profile_id=profile_id,
            config_path=str(path),
        ) from e
    if not isinstance(raw, dict):
        raise ProfileConfigError(
            f"{path} is empty or not a mapping",
            profile_id=profile_id,
            config_path=str(path),
        )
    raw.setdefault("profile_id", profile_id)
    return raw


def load_profile_config(
    profile_id: str,
    config_path: Optional[str | Path] = None,
) -> DashboardConfig:
    """
    Parse and validate a dashboard profile.

    Args:
        profile_id: Directory name under profiles/, e.g. 'default'.
        config_path: Explicit config file, bypassing profile discovery.

    Raises:
        FileNotFoundError: The config file does not exist.
        ProfileConfigError: The file is empty, not YAML, or fails validation.
    """
    path = Path(config_path) if config_path else find_profiles_dir() / profile_id / PROFILE_FILE
    path = path.resolve()
    cached = _cache.get(path)
    if cached is not None:
        return cached

    if not path.is_file():
        raise FileNotFoundError(
            f"Profile '{profile_id}' has no {PROFILE_FILE} at {path}"
        )

    raw = _read_profile(profile_id, path)
    try:
        config = DashboardConfig(**raw)
    except ValidationError as e:
        raise ProfileConfigError(
            f"Profile '{profile_id}' failed validation:\n{e}",
            profile_id=profile_id,
            config_path=str(path),
        ) from e

    _cache[path] = config
    return config


def list_available_profiles() -> list[str]:
    """Names of the profile directories that contain a config.yaml."""
    try:
        root = find_profiles_dir()
    except FileNotFoundError:
        return []
    return sorted(p.parent.name for p in root.glob(f"*/{PROFILE_FILE}") if p.is_file())


def resolve_env_vars(config: DashboardConfig) -> dict[str, str]:
    """
    Values of the Supabase URL and key variables named by the profile.

    Raises EnvironmentError naming every variable that is unset or empty.
    """
    names = sorted({config.supabase.url_env, config.supabase.key_env})
    values = {name: os.environ.get(name, "") for name in names}
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise EnvironmentError(
            f"Missing required environment variables: {', '.join(missing)} "
            "(set them in .env or the shell)"
        )
    return values


def clear_cache() -> None:
    _cache.clear()
