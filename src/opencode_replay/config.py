"""Layered TOML configuration: global file, then the project's own file."""

import os
import tomllib
from pathlib import Path

import click

from .storage import get_default_storage_path

PROJECT_CONFIG_FILENAME = ".opencode-replay.toml"

STORAGE_ENV_VAR = "OPENCODE_REPLAY_STORAGE"
REPO_ENV_VAR = "OPENCODE_REPLAY_REPO"
CONFIG_ENV_VAR = "OPENCODE_REPLAY_CONFIG"

APP_NAME = "opencode-replay"


def _env_value(name: str) -> str | None:
    val = (os.environ.get(name) or "").strip()
    return val or None


def global_config_path() -> Path:
    """``$OPENCODE_REPLAY_CONFIG``, else ``config.toml`` in the per-user app dir."""
    override = _env_value(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path(click.get_app_dir(APP_NAME)) / "config.toml"


def read_toml_file(path: Path) -> dict:
    """Load one TOML file; unreadable or malformed files count as empty."""
    try:
        with open(path, "rb") as fh:
            obj = tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError, UnicodeDecodeError):
        return {}
    return obj if isinstance(obj, dict) else {}


def merge_config(base: dict, override: dict) -> dict:
    """Overlay ``override`` onto ``base`` one table at a time."""
    merged = {key: dict(val) if isinstance(val, dict) else val for key, val in base.items()}
    for section, values in override.items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def config_files(project_root: Path | None = None) -> list[Path]:
    """Config files that exist, lowest precedence first."""
    candidates = [global_config_path()]
    if project_root is not None:
        candidates.append(Path(project_root) / PROJECT_CONFIG_FILENAME)
    return [path for path in candidates if path.is_file()]


def load_config(*, project_root: Path | None = None) -> dict:
    """Merge the global config with ``.opencode-replay.toml`` in ``project_root``."""
    cfg: dict = {}
    for path in config_files(project_root):
        cfg = merge_config(cfg, read_toml_file(path))
    return cfg


def config_get(cfg: dict, dotted_key: str, default=None):
    """Look up ``"section.key"``; missing sections or keys give ``default``."""
    section, _, key = dotted_key.partition(".")
    table = cfg.get(section)
    if not key:
        return default if table is None else table
    if not isinstance(table, dict):
        return default
    return table.get(key, default)


def resolve_storage_path(cli_value, cfg: dict) -> Path:
    """CLI flag, then environment, then config file, then OpenCode's default."""
    value = cli_value or _env_value(STORAGE_ENV_VAR) or config_get(cfg, "storage.path")
    if isinstance(value, (str, Path)) and str(value).strip():
        return Path(value).expanduser()
    return get_default_storage_path()


def resolve_repo_string(cli_value, cfg: dict) -> str | None:
    value = cli_value or _env_value(REPO_ENV_VAR) or config_get(cfg, "github.repo")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def resolve_output_dir(cli_value, cfg: dict, default) -> Path:
    value = cli_value or config_get(cfg, "output.dir")
    if isinstance(value, (str, Path)) and str(value).strip():
        return Path(value).expanduser()
    return Path(default)
