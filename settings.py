"""Runtime settings read from the environment.

``app.py`` loads ``.env`` with python-dotenv before calling ``Settings.from_env()``,
so every value here can come from either the real environment or that file.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_dir = Path(__file__).parent


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    min_prompt_length: int = 10
    max_prompt_length: int = 5000
    request_timeout: float = 30.0
    health_check_timeout: float = 5.0
    default_provider: str = "ollama"
    db_path: Path = _dir / "data" / "easyprompt.db"
    session_max_age_days: int = 30

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, keeping defaults for unset ones."""
        return cls(
            min_prompt_length=_env_int("MIN_PROMPT_LENGTH", cls.min_prompt_length),
            max_prompt_length=_env_int("MAX_PROMPT_LENGTH", cls.max_prompt_length),
            request_timeout=_env_float("REQUEST_TIMEOUT", cls.request_timeout),
            health_check_timeout=_env_float("HEALTH_CHECK_TIMEOUT", cls.health_check_timeout),
            default_provider=os.environ.get("DEFAULT_PROVIDER", cls.default_provider).strip().lower(),
            db_path=Path(os.environ["DB_PATH"]) if os.environ.get("DB_PATH") else cls.db_path,
            session_max_age_days=_env_int("SESSION_MAX_AGE_DAYS", cls.session_max_age_days),
        )
