import os
import ssl
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from webapi_client.errors import ConfigError
from webapi_client.log import init_log

DEFAULT_CONFIG_PATH = Path("/etc/webapi-client.yaml")
CONFIG_PATH_ENV = "WEBAPI_CLIENT_CONFIG"


class WebApiConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    trust_cert: Path
    servers: tuple[str, ...] = Field(min_length=1)
    retry_delay: float = Field(default=60.0, gt=0)  # after a 429 on submission
    poll_interval: float = Field(default=30.0, gt=0)
    query_state_path: str = "/sys/query_state"
    log_level: str = "INFO"

    @field_validator("servers")
    @classmethod
    def _strip_trailing_slash(cls, servers: tuple[str, ...]) -> tuple[str, ...]:
        stripped = tuple(server.rstrip("/") for server in servers)
        if not all(stripped):
            raise ValueError("server addresses must not be blank")
        return stripped


class WebApiContext:
    """Immutable settings and trust material shared by every job"""

    def __init__(self, config: WebApiConfig, ssl_context: ssl.SSLContext):
        self._config = config
        self._ssl_context = ssl_context

    @property
    def config(self) -> WebApiConfig:
        return self._config

    @property
    def ssl_context(self) -> ssl.SSLContext:
        return self._ssl_context

    @classmethod
    def from_config(cls, config: WebApiConfig) -> "WebApiContext":
        return cls(config, build_ssl_context(config.trust_cert))


def resolve_config_path(path: Optional[Union[str, Path]] = None) -> Path:
    if path:
        return Path(path)
    return Path(os.environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH))


def load_config(path: Optional[Union[str, Path]] = None) -> WebApiConfig:
    """Read and validate the YAML config, failing on anything missing or invalid"""
    config_path = resolve_config_path(path)

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"open config file {config_path} failed: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"parse config file {config_path} failed: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"config file {config_path} is not a mapping")

    try:
        config = WebApiConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"invalid config in {config_path}: {e}") from e

    logger.info(f"webapi config: {config!r}")
    return config


def build_ssl_context(trust_cert: Union[str, Path]) -> ssl.SSLContext:
    """Create an SSL context trusting exactly the given PEM certificate"""
    try:
        pem = Path(trust_cert).read_text()
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"read cert file {trust_cert} failed: {e}") from e

    try:
        return ssl.create_default_context(cadata=pem)
    except (ssl.SSLError, ValueError) as e:
        raise ConfigError(f"read PEM cert {trust_cert} failed: {e}") from e


def load_context(path: Optional[Union[str, Path]] = None) -> WebApiContext:
    return WebApiContext.from_config(load_config(path))


@lru_cache(maxsize=1)
def default_context() -> WebApiContext:
    """Process-wide context, loaded once from the default config location"""
    context = load_context()
    init_log(context.config.log_level)
    return context
