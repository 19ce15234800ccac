"""
Hierarchical configuration loader for outline_sync.

Finds config files by convention, supports YAML ``!include`` and env var
interpolation, and merges files so that the project-level file wins.  A
relative store state directory is anchored to the project the config file
belongs to.

Usage:
    from outline_sync.config_loader import load_hierarchical_config

    config = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "OUTLINE_SYNC_CONFIG"
PROJECT_CONFIG_DIR = ".outline_sync"

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` is replaced with ``os.environ.get(VAR, "")``.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    * Literal ``${`` with no closing ``}`` is left untouched.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        default = match.group(2)  # None when no :- clause
        return default if default is not None else ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Walk a nested dict/list and interpolate env vars in all strings."""
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. YAML !include support (dedicated SafeLoader subclass)
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """YAML SafeLoader subclass with ``!include`` support.

    A dedicated subclass keeps the global ``yaml.SafeLoader`` untouched.
    Each load carries an *include stack* used to detect circular includes.
    """


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Handle ``!include path/to/file.yml`` directives."""
    include_path_str: str = loader.construct_scalar(node)

    # Relative includes resolve against the including file
    if os.path.isabs(include_path_str):
        include_path = Path(include_path_str)
    else:
        include_path = Path(loader.name).resolve().parent / include_path_str
    include_path = include_path.resolve()

    include_stack: list[Path] = getattr(loader, "_include_stack", [])
    if include_path in include_stack:
        chain = " -> ".join(str(p) for p in include_stack) + f" -> {include_path}"
        raise ValueError(f"Circular include detected: {chain}")

    if not include_path.exists():
        raise FileNotFoundError(
            f"Include file not found: {include_path} "
            f"(referenced from {Path(loader.name).resolve()})"
        )

    return _load_yaml_with_includes(include_path, _include_stack=include_stack + [include_path])


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Load a YAML file using the ``ConfigLoader`` (with ``!include``)."""
    path = path.resolve()
    if _include_stack is None:
        _include_stack = [path]

    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# 3. Convention-based file discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``OUTLINE_SYNC_CONFIG`` env var (explicit single path)
        2. ``.outline_sync/config.yml`` in CWD (project-level)
        3. ``.outline_sync/config.yaml`` in CWD (alternate extension)
        4. ``~/.config/outline_sync/config.yml`` (XDG global)

    Only paths that exist on disk are returned.
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    cwd = Path.cwd()
    candidates.append(cwd / PROJECT_CONFIG_DIR / "config.yml")
    candidates.append(cwd / PROJECT_CONFIG_DIR / "config.yaml")

    candidates.append(Path.home() / ".config" / "outline_sync" / "config.yml")

    return [p for p in candidates if p.exists()]


# ---------------------------------------------------------------------------
# 3a. Config bootstrapping
# ---------------------------------------------------------------------------

_STARTER_CONFIG = """\
# outline-sync configuration
#
# Values may reference environment variables: ${VAR} or ${VAR:-default}.
# Environment overrides: OUTLINE_SYNC_STATE_DIR, OUTLINE_SYNC_BACKEND,
#   OUTLINE_SYNC_LOCK_TIMEOUT, OUTLINE_SYNC_MAX_PARALLEL, OUTLINE_SYNC_DEBUG
#
# store:
#   backend: json            # json | memory
#   state_dir: .outline_sync/projects   # relative to the project root
#
# sync:
#   lock_timeout: 30         # seconds to wait for a busy project
#   max_parallel_imports: 2
#   preview_title_width: 50
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """Return the single config file path that should be used.

    The highest-precedence existing file when there is one, otherwise the
    default project-level path ``CWD / .outline_sync / config.yml``.

    This does NOT create the file -- use ``ensure_config()`` for that.
    """
    existing = discover_config_files()
    if existing:
        return existing[0]
    return Path.cwd() / PROJECT_CONFIG_DIR / "config.yml"


def ensure_config(target: Path | None = None) -> Path:
    """Ensure a config file exists, creating directory and starter file if needed.

    Args:
        target: Explicit path to create.  If ``None``, uses
            ``resolve_config_path()``.

    Returns:
        Path to the config file (existing or newly created).
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or resolve_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# 4. Hierarchical merge
# ---------------------------------------------------------------------------


def _config_root(path: Path) -> Path:
    """Directory that relative paths in the config file *path* resolve against.

    A file inside a ``.outline_sync`` directory belongs to the project
    containing that directory; any other file anchors to its own directory.
    """
    parent = path.resolve().parent
    if parent.name == PROJECT_CONFIG_DIR:
        return parent.parent
    return parent


def _anchor_state_dir(data: dict[str, Any], path: Path) -> dict[str, Any]:
    """Make a relative ``store.state_dir`` absolute against the file's root.

    The project store then stays the same whichever directory the CLI or
    server is started from.
    """
    store = data.get("store")
    if not isinstance(store, dict):
        return data
    state_dir = store.get("state_dir")
    if not isinstance(state_dir, str) or not state_dir.strip():
        return data
    candidate = Path(state_dir.strip()).expanduser()
    if candidate.is_absolute():
        return data
    anchored = str(_config_root(path) / candidate)
    logger.debug("Resolved store.state_dir %r from %s to %s", state_dir, path, anchored)
    return {**data, "store": {**store, "state_dir": anchored}}


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Merge strategy ("project wins"):
        Files are loaded from lowest precedence to highest.  Each file's
        top-level keys **replace** (not deep-merge) those from earlier files.

    Env var interpolation is applied to each file's string values, and a
    relative ``store.state_dir`` is resolved against the file's project
    root (the directory holding ``.outline_sync/``) or, for files elsewhere,
    the file's own directory.

    Returns an empty dict when no config files exist (zero-config).
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(_anchor_state_dir(_interpolate_recursive(data), path))
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return merged
