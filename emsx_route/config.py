"""
Configuration loading for the EMSX group route client.

Settings come from three layers, later layers winning:
    1. Built-in defaults (localhost:8194, queue size 10000, EMSX beta service)
    2. config.yaml
    3. EMSX_* environment variables, optionally loaded from a .env file

The resulting SessionSettings is immutable and passed to the controller at
construction; nothing reads configuration after that.
"""

import os
import sys
from pathlib import Path
from typing import Literal, Optional, Union

import yaml
from dotenv import find_dotenv, load_dotenv
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigError


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

ENV_OVERRIDES = {
    "EMSX_SERVER_HOST": "server_host",
    "EMSX_SERVER_PORT": "server_port",
    "EMSX_MAX_EVENT_QUEUE_SIZE": "max_event_queue_size",
    "EMSX_SERVICE": "service_name",
    "EMSX_TRANSPORT": "transport",
}


class SessionSettings(BaseModel):
    """
    Immutable connection settings.

    Attributes:
        server_host: API endpoint host
        server_port: API endpoint port
        max_event_queue_size: Bound of the session's event queue
        service_name: EMSX service that receives the request
        transport: 'simulated' for the in-process session, 'blpapi' for a
            real Bloomberg API connection

    Examples:
        >>> settings = SessionSettings()
        >>> (settings.server_host, settings.server_port)
        ('localhost', 8194)
    """

    model_config = {"frozen": True}

    server_host: str = Field(default="localhost", min_length=1)
    server_port: int = Field(default=8194, ge=1, le=65535)
    max_event_queue_size: int = Field(default=10000, gt=0)
    service_name: str = Field(default="//blp/emapisvc_beta", min_length=1)
    transport: Literal["simulated", "blpapi"] = "simulated"


def _read_yaml(config_path: Path) -> dict:
    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse configuration file: {e}") from e
    except OSError as e:
        raise ConfigError(f"Error reading configuration file: {e}") from e

    if config is None:
        raise ConfigError(f"Configuration file is empty: {config_path}")
    if not isinstance(config, dict):
        raise ConfigError(
            f"Configuration file must contain a mapping, got {type(config).__name__}"
        )
    return config


def _read_session_block(config_path: Path) -> dict:
    session = _read_yaml(config_path).get("session")
    if session is None:
        return {}
    if not isinstance(session, dict):
        raise ConfigError(
            f"'session' must be a mapping, got {type(session).__name__}"
        )
    return session


def load_settings(
    config_path: Optional[Union[str, Path]] = None,
    env_file: Optional[Union[str, Path]] = None,
) -> SessionSettings:
    """
    Load settings from config.yaml and the environment.

    Args:
        config_path: Path to a YAML file. When omitted, config.yaml in the
            project root is used if it exists.
        env_file: Path to a .env file. When omitted, python-dotenv searches
            for one starting from the working directory and walking up.
            Existing environment variables are never overridden by the file.

    Returns:
        SessionSettings: Validated settings

    Raises:
        ConfigError: If an explicit config file is missing, the file cannot
            be parsed, its session block is not a mapping, or a value fails
            validation
    """
    values: dict = {}

    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")
        values.update(_read_session_block(path))
    elif DEFAULT_CONFIG_PATH.exists():
        values.update(_read_session_block(DEFAULT_CONFIG_PATH))

    if env_file is not None:
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(find_dotenv(usecwd=True), override=False)

    for env_var, key in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            values[key] = value

    try:
        settings = SessionSettings(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid session settings: {e}") from e

    logger.debug(f"Loaded settings: {settings}")
    return settings


def configure_logging(level: str = "WARNING", log_dir: Optional[Union[str, Path]] = None) -> None:
    """
    Route loguru output to stderr at the given level, plus an optional file.

    Console output of the client goes to stdout through ConsoleOut; loguru
    diagnostics stay on stderr so the two never mix.
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper())

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / "emsx_route.log",
            level="DEBUG",
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )
