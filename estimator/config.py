# estimator/config.py

from __future__ import annotations

import logging
import math
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from estimator.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "your-secret-key-change-this-in-production"
DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_TEAM_VELOCITY = 20.0

_logging_configured = False


@dataclass
class Settings:
    """Runtime settings, read from the environment (and .env)."""
    data_dir: Path
    upload_dir: Path
    jwt_secret: str
    genai_api_key: Optional[str] = None
    genai_model: str = DEFAULT_MODEL
    token_ttl_days: int = 7
    default_team_velocity: float = DEFAULT_TEAM_VELOCITY
    default_scale: str = "tshirt"
    log_level: str = "INFO"

    @property
    def store_path(self) -> Path:
        return self.data_dir / "estimator_db.json"


def _parse_float(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if not math.isfinite(value) or value <= 0:
        raise ConfigError(f"{name} must be a positive finite number, got {raw!r}")
    return value


def _parse_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from `env` (defaults to os.environ after loading .env).
    """
    if env is None:
        load_dotenv()
        env = os.environ

    base_dir = Path(env.get("ESTIMATOR_HOME", ".estimator"))
    data_dir = Path(env.get("ESTIMATOR_DATA_DIR") or base_dir / "data")
    upload_dir = Path(env.get("ESTIMATOR_UPLOAD_DIR") or base_dir / "uploads")

    jwt_secret = env.get("JWT_SECRET") or DEFAULT_JWT_SECRET
    if jwt_secret == DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET is not set; using the development secret.")

    scale_name = (env.get("ESTIMATOR_SCALE") or "tshirt").strip().lower()
    if scale_name not in ("tshirt", "fibonacci"):
        raise ConfigError(
            f"ESTIMATOR_SCALE must be 'tshirt' or 'fibonacci', got {scale_name!r}"
        )

    return Settings(
        data_dir=data_dir,
        upload_dir=upload_dir,
        jwt_secret=jwt_secret,
        genai_api_key=env.get("GOOGLE_API_KEY") or env.get("GENAI_API_KEY"),
        genai_model=env.get("ESTIMATOR_MODEL") or DEFAULT_MODEL,
        token_ttl_days=_parse_int(
            "ESTIMATOR_TOKEN_TTL_DAYS", env.get("ESTIMATOR_TOKEN_TTL_DAYS", "7")
        ),
        default_team_velocity=_parse_float(
            "ESTIMATOR_TEAM_VELOCITY",
            env.get("ESTIMATOR_TEAM_VELOCITY", str(DEFAULT_TEAM_VELOCITY)),
        ),
        default_scale=scale_name,
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    """Install a stdout handler once; later calls only adjust the level."""
    global _logging_configured

    numeric = getattr(logging, str(level).upper(), logging.INFO)
    if _logging_configured:
        logging.getLogger().setLevel(numeric)
        return

    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler(stream=sys.stdout)],
    )
    _logging_configured = True
