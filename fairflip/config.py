"""
Configuration management for FairFlip.
Supports config.json with environment variable overrides.
All paths are resolved relative to the project root.
"""

import json
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv()

# Project root directory (parent of 'fairflip' folder)
PROJECT_ROOT = Path(__file__).parent.parent


def get_env(key: str, default: str = None) -> Optional[str]:
    """Get environment variable with optional default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes", "on")


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float environment variable."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        return default


# ==================== Configuration Models ====================

class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 3001
    debug: bool = True
    name: str = "FairFlip"
    allowed_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:5173"]
    )


class SecurityConfig(BaseModel):
    secret_key: str = "dev-only-change-me"
    session_max_age_days: int = 7
    session_cookie: str = "session"


class FairnessConfig(BaseModel):
    """Commit-reveal and archive settings."""
    seed_bytes: int = 16  # 128 bits per seed, hex encoded
    archive_retention_seconds: float = 20.0
    eviction_interval_seconds: float = 1.0
    reveal_delay_seconds: float = 0.0  # presentation only; reference client used 1.5

    @field_validator("seed_bytes")
    @classmethod
    def _min_entropy(cls, value: int) -> int:
        if value < 16:
            raise ValueError("seed_bytes must be at least 16 (128 bits)")
        return value


class EconomyConfig(BaseModel):
    starting_points: int = 1000
    payout_multiplier: int = 2  # winner takes both stakes
    min_bet: int = 1


class MatchesConfig(BaseModel):
    stale_after_seconds: float = 3600.0
    max_player_seed_length: int = 128


class IdentityConfig(BaseModel):
    users_api: str = "https://users.roblox.com"
    code_prefix: str = "NEON-"
    code_ttl_seconds: int = 300
    request_timeout_seconds: float = 10.0


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_to_file: bool = False
    formatter: str = "color"
    log_file: str = "data/app.log"

    def get_log_path(self) -> Path:
        return PROJECT_ROOT / self.log_file


class AppConfig(BaseModel):
    """Main application configuration."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    fairness: FairnessConfig = Field(default_factory=FairnessConfig)
    economy: EconomyConfig = Field(default_factory=EconomyConfig)
    matches: MatchesConfig = Field(default_factory=MatchesConfig)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ==================== Configuration Loading ====================

def load_config(config_path: Path = None) -> AppConfig:
    """
    Load configuration from config.json with environment variable overrides.
    Environment variables take precedence over config.json values.
    """
    if config_path is None:
        config_path = PROJECT_ROOT / "config.json"

    data = {}

    if config_path.exists():
        with open(config_path, "r") as f:
            data = json.load(f)

    if get_env("SERVER_HOST"):
        data.setdefault("server", {})["host"] = get_env("SERVER_HOST")
    if get_env("SERVER_PORT"):
        data.setdefault("server", {})["port"] = get_env_int("SERVER_PORT", 3001)
    if get_env("DEBUG"):
        data.setdefault("server", {})["debug"] = get_env_bool("DEBUG")

    if get_env("SECRET_KEY"):
        data.setdefault("security", {})["secret_key"] = get_env("SECRET_KEY")

    if get_env("SEED_BYTES"):
        data.setdefault("fairness", {})["seed_bytes"] = get_env_int("SEED_BYTES", 16)
    if get_env("ARCHIVE_RETENTION_SECONDS"):
        data.setdefault("fairness", {})["archive_retention_seconds"] = get_env_float(
            "ARCHIVE_RETENTION_SECONDS", 20.0
        )
    if get_env("REVEAL_DELAY_SECONDS"):
        data.setdefault("fairness", {})["reveal_delay_seconds"] = get_env_float(
            "REVEAL_DELAY_SECONDS", 0.0
        )

    if get_env("STARTING_POINTS"):
        data.setdefault("economy", {})["starting_points"] = get_env_int(
            "STARTING_POINTS", 1000
        )

    if get_env("ROBLOX_USERS_API"):
        data.setdefault("identity", {})["users_api"] = get_env("ROBLOX_USERS_API")

    if get_env("LOG_LEVEL"):
        data.setdefault("logging", {})["level"] = get_env("LOG_LEVEL")
    if get_env("LOG_TO_FILE"):
        data.setdefault("logging", {})["log_to_file"] = get_env_bool("LOG_TO_FILE")
    if get_env("LOG_FORMATTER"):
        data.setdefault("logging", {})["formatter"] = get_env("LOG_FORMATTER")

    return AppConfig(**data)


# Global config instance
settings = load_config()
