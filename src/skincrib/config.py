"""
Configuration management for the Skincrib merchant client.

Values come from constructor arguments or from environment variables
(a local .env file is loaded first).
"""

import os
import logging
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

DEFAULT_URL = "https://skincrib.com"
DEFAULT_NAMESPACE = "/merchants"
DEFAULT_REQUEST_TIMEOUT = 15.0
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _parse_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    value = value.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"{key} must be a boolean, got {value!r}")


class MerchantConfig:
    """Configuration for a MerchantClient."""

    def __init__(
        self,
        api_key: Optional[str],
        url: str = DEFAULT_URL,
        namespace: str = DEFAULT_NAMESPACE,
        reconnect: bool = True,
        memory: bool = True,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        log_level: str = "INFO",
        log_format: str = DEFAULT_LOG_FORMAT,
    ):
        """
        Args:
            api_key: Skincrib merchant API key
            url: Socket server base URL
            namespace: Socket.IO namespace of the merchant API
            reconnect: Re-authenticate automatically after a disconnect
            memory: Keep listings and client deposits/withdraws in memory
            request_timeout: Seconds to wait for a request acknowledgement
            log_level: Logging level name
            log_format: Logging format string
        """
        self.api_key = api_key
        self.url = url
        self.namespace = namespace
        self.reconnect = reconnect
        self.memory = memory
        self.request_timeout = request_timeout
        self.log_level = log_level
        self.log_format = log_format

        self._validate_config()

    @classmethod
    def from_env(cls) -> 'MerchantConfig':
        """
        Create configuration from environment variables.

        Required environment variables:
        - SKINCRIB_API_KEY: Merchant API key

        Optional:
        - SKINCRIB_URL, SKINCRIB_NAMESPACE
        - SKINCRIB_RECONNECT, SKINCRIB_MEMORY (booleans, default true)
        - SKINCRIB_REQUEST_TIMEOUT (seconds, default 15)
        - SKINCRIB_LOG_LEVEL, SKINCRIB_LOG_FORMAT
        """
        load_dotenv()

        api_key = os.getenv("SKINCRIB_API_KEY")
        if not api_key:
            raise ConfigurationError("SKINCRIB_API_KEY environment variable is required")

        timeout_env = os.getenv("SKINCRIB_REQUEST_TIMEOUT", str(DEFAULT_REQUEST_TIMEOUT))
        try:
            request_timeout = float(timeout_env)
        except ValueError:
            raise ConfigurationError(f"SKINCRIB_REQUEST_TIMEOUT must be a number, got {timeout_env!r}")

        return cls(
            api_key=api_key,
            url=os.getenv("SKINCRIB_URL", DEFAULT_URL),
            namespace=os.getenv("SKINCRIB_NAMESPACE", DEFAULT_NAMESPACE),
            reconnect=_parse_bool("SKINCRIB_RECONNECT", True),
            memory=_parse_bool("SKINCRIB_MEMORY", True),
            request_timeout=request_timeout,
            log_level=os.getenv("SKINCRIB_LOG_LEVEL", "INFO"),
            log_format=os.getenv("SKINCRIB_LOG_FORMAT", DEFAULT_LOG_FORMAT),
        )

    def _validate_config(self) -> None:
        """Validate configuration values."""
        if not self.api_key:
            raise ConfigurationError('"api_key" must be provided to connect to Skincrib.')
        if not isinstance(self.reconnect, bool):
            raise ConfigurationError('"reconnect" must be a boolean.')
        if not isinstance(self.memory, bool):
            raise ConfigurationError('"memory" must be a boolean.')
        if self.request_timeout <= 0:
            raise ConfigurationError(f"request_timeout must be positive, got {self.request_timeout}")
        if not self.namespace.startswith("/"):
            raise ConfigurationError(f"namespace must start with '/', got {self.namespace!r}")

    def __repr__(self) -> str:
        # Never log the API key
        return (
            f"MerchantConfig(url={self.url!r}, namespace={self.namespace!r}, "
            f"reconnect={self.reconnect}, memory={self.memory}, "
            f"request_timeout={self.request_timeout})"
        )


def setup_logging(config: MerchantConfig) -> None:
    """Configure root logging from the client configuration."""
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=config.log_format,
    )
