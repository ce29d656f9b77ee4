"""Configuration management for the HiLink client."""

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from dotenv import load_dotenv

from . import __version__


class RetryConfig(BaseModel):
    """Retry policy for transport failures and busy responses."""
    max_attempts: int = Field(default=4, ge=1, le=20)
    base_delay: float = Field(default=0.5, gt=0)  # seconds before the first retry
    max_delay: float = Field(default=5.0, gt=0)  # cap for a single backoff step
    multiplier: float = Field(default=2.0, ge=1.0)
    jitter: bool = True
    deadline: float = Field(default=15.0, gt=0)  # ceiling on total elapsed retry time


class CredentialsConfig(BaseModel):
    """Credentials used for login and transparent re-login."""
    username: str = "admin"
    password: str = ""

    @field_validator("password", mode="before")
    @classmethod
    def expand_env_var(cls, v: str) -> str:
        """Expand environment variables in password."""
        if v and v.startswith("${") and v.endswith("}"):
            env_var = v[2:-1]
            return os.getenv(env_var, "")
        return v


class DeviceConfig(BaseModel):
    """Connection settings for a single device."""
    base_url: str = "http://192.168.8.1"
    timeout: float = Field(default=30.0, gt=0, le=300)
    user_agent: str = f"hilink-client/{__version__}"
    retry: RetryConfig = Field(default_factory=RetryConfig)
    credentials: Optional[CredentialsConfig] = None

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) URL and drop the trailing slash."""
        if not re.match(r"^https?://[^/\s]+", v):
            raise ValueError(f"base_url must be an http:// or https:// URL, got {v!r}")
        return v.rstrip("/")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None


class Config(BaseModel):
    """Main configuration class."""
    device: DeviceConfig = Field(default_factory=DeviceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def expand_env_vars(obj):
    """Recursively expand environment variables in a dict."""
    if isinstance(obj, dict):
        return {k: expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        pattern = re.compile(r'\$\{([^}]+)\}')
        def replacer(match):
            return os.getenv(match.group(1), match.group(0))
        return pattern.sub(replacer, obj)
    return obj


def load_config(config_path: str = "hilink.yaml", env_file: str = ".env") -> Config:
    """Load configuration from YAML file and environment variables.

    Args:
        config_path: Path to the YAML configuration file.
        env_file: Path to the .env file for environment variables.

    Returns:
        Config object with all settings.
    """
    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_file, "r") as f:
        raw_config = yaml.safe_load(f) or {}

    expanded_config = expand_env_vars(raw_config)

    return Config(**expanded_config)
