"""Runtime configuration for the CLI and the MCP server.

Resolves store and sync settings from CLI args, environment variables,
.env files, and the YAML config.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    OUTLINE_SYNC_STATE_DIR: Directory of project documents (optional)
    OUTLINE_SYNC_BACKEND: Repository backend, json or memory (optional, default: json)
    OUTLINE_SYNC_LOCK_TIMEOUT: Seconds to wait for a busy project (optional, default: 30)
    OUTLINE_SYNC_MAX_PARALLEL: Max concurrent parses in the MCP server (optional, default: 2)
    OUTLINE_SYNC_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass

from .config_schema import DEFAULT_STATE_DIR, UnifiedConfig

logger = logging.getLogger(__name__)

VALID_BACKENDS = ("json", "memory")


@dataclass
class Config:
    state_dir: str = DEFAULT_STATE_DIR
    backend: str = "json"
    lock_timeout: float = 30.0
    max_parallel_imports: int = 2
    preview_title_width: int = 50
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the backend is unknown, the state directory is empty
            for the json backend, or a numeric value is out of range.
    """
    config.backend = config.backend.strip().lower()
    if config.backend not in VALID_BACKENDS:
        raise ValueError(
            f"Invalid backend '{config.backend}': must be one of {', '.join(VALID_BACKENDS)}"
        )

    config.state_dir = config.state_dir.strip()
    if config.backend == "json" and not config.state_dir:
        raise ValueError(
            "State directory cannot be empty. Set OUTLINE_SYNC_STATE_DIR or store.state_dir."
        )

    if config.lock_timeout <= 0:
        raise ValueError(
            f"Invalid lock timeout {config.lock_timeout}: must be a positive number of seconds"
        )

    if not (1 <= config.max_parallel_imports <= 32):
        raise ValueError(
            f"Invalid max parallel imports {config.max_parallel_imports}: "
            "must be a number between 1 and 32"
        )

    if config.backend == "memory":
        logger.warning("Using the memory backend: projects are lost when the process exits.")


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_number_env(key: str, cast: type, low: float, high: float) -> float | int | None:
    """Return a numeric env var, or None if unset.

    Raises:
        ValueError: If the value is not a number in ``[low, high]``.
    """
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low:g} and {high:g}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low:g} and {high:g}"
        )
    return value


def load_config(
    state_dir: str | None = None,
    backend: str | None = None,
    lock_timeout: float | None = None,
    debug: bool = False,
    yaml_config: UnifiedConfig | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_config > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        state_dir: Override state directory (CLI ``--state-dir``).
        backend: Override repository backend (CLI ``--backend``).
        lock_timeout: Override lock timeout in seconds.
        debug: Enable debug logging (CLI flag).
        yaml_config: Config built from the YAML files, used as fallback.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value from any source is invalid.
    """
    fb = yaml_config or UnifiedConfig()

    # --- String fields: CLI > env > YAML ---

    final_state_dir = state_dir or os.getenv("OUTLINE_SYNC_STATE_DIR") or fb.store.state_dir
    final_backend = backend or os.getenv("OUTLINE_SYNC_BACKEND") or fb.store.backend

    # --- Numeric fields: CLI > env > YAML ---

    if lock_timeout is not None:
        final_lock_timeout = float(lock_timeout)
    else:
        env_timeout = _get_number_env("OUTLINE_SYNC_LOCK_TIMEOUT", float, 0.001, 3600)
        final_lock_timeout = env_timeout if env_timeout is not None else fb.sync.lock_timeout

    env_parallel = _get_number_env("OUTLINE_SYNC_MAX_PARALLEL", int, 1, 32)
    final_parallel = (
        int(env_parallel) if env_parallel is not None else fb.sync.max_parallel_imports
    )

    # --- Boolean fields: CLI > env > default ---

    if debug:
        final_debug = True
    else:
        final_debug = bool(_get_bool_env("OUTLINE_SYNC_DEBUG"))

    config = Config(
        state_dir=final_state_dir,
        backend=final_backend,
        lock_timeout=final_lock_timeout,
        max_parallel_imports=final_parallel,
        preview_title_width=fb.sync.preview_title_width,
        debug=final_debug,
    )

    validate_config(config)

    return config
