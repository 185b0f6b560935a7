"""
Client configuration for the GTM storage service.

The configuration is an immutable value owned by a StorageClient for its
whole lifetime, so one client can be shared between threads without locking.
"""
import os
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError


# Applied when no timeout (or a zero timeout) is configured
DEFAULT_TIMEOUT_SECONDS = 30.0


class ClientConfig(BaseModel):
    """
    Connection settings for a storage service endpoint.

    Loaded either from explicit options or from the environment:
    - GTM_STORAGE_URL: service base URL (required)
    - GTM_STORAGE_API_KEY: API key sent with write operations (optional)
    - GTM_STORAGE_TIMEOUT: request timeout in seconds (optional)
    """
    model_config = ConfigDict(frozen=True)

    base_url: str = Field(
        ..., description="Service base URL, trailing slashes stripped"
    )
    api_key: Optional[str] = Field(
        default=None, description="API key attached as bearer token and X-API-Key header"
    )
    timeout: float = Field(
        default=DEFAULT_TIMEOUT_SECONDS, description="Per-request timeout in seconds"
    )
    transport: Optional[Any] = Field(
        default=None,
        description="requests.Session-compatible executor (default: one session per thread)",
        exclude=True,
        repr=False,
    )

    @field_validator('base_url')
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Strip trailing slashes so path joining is unambiguous."""
        v = v.strip().rstrip('/')
        if not v:
            raise ValueError('base URL must not be empty')
        if not v.startswith(('http://', 'https://')):
            raise ValueError('base URL must start with http:// or https://')
        return v

    @field_validator('api_key')
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty key as no key."""
        return v or None

    @field_validator('timeout', mode='before')
    @classmethod
    def validate_timeout(cls, v):
        """Apply the default when the timeout is zero or absent."""
        if v is None or v == 0:
            return DEFAULT_TIMEOUT_SECONDS
        if isinstance(v, (int, float)) and v < 0:
            raise ValueError('timeout must not be negative')
        return v

    @field_validator('transport')
    @classmethod
    def validate_transport(cls, v):
        if v is not None and not callable(getattr(v, 'request', None)):
            raise ValueError('transport must provide a request(method, url, **kwargs) method')
        return v

    @classmethod
    def from_options(
        cls,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[Any] = None,
    ) -> "ClientConfig":
        """
        Build a configuration, reporting invalid values as ConfigurationError.

        Args:
            base_url: Service base URL (e.g. http://127.0.0.1:3000)
            api_key: Optional API key
            timeout: Request timeout in seconds (default 30 when zero or None)
            transport: Optional requests.Session-compatible executor

        Raises:
            ConfigurationError: A value failed validation
        """
        try:
            return cls(
                base_url=base_url,
                api_key=api_key,
                timeout=timeout,
                transport=transport,
            )
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigurationError(f"Invalid storage client configuration: {details}") from e

    @classmethod
    def from_env(cls, transport: Optional[Any] = None) -> "ClientConfig":
        """
        Build a configuration from environment variables.

        Raises:
            ConfigurationError: GTM_STORAGE_URL is missing or a value is invalid
        """
        base_url = os.getenv("GTM_STORAGE_URL")
        if not base_url:
            raise ConfigurationError(
                "Missing required storage setting: GTM_STORAGE_URL. "
                "Check environment variables."
            )

        raw_timeout = os.getenv("GTM_STORAGE_TIMEOUT")
        timeout = None
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                raise ConfigurationError(
                    f"GTM_STORAGE_TIMEOUT must be a number of seconds, got '{raw_timeout}'"
                )

        return cls.from_options(
            base_url=base_url,
            api_key=os.getenv("GTM_STORAGE_API_KEY"),
            timeout=timeout,
            transport=transport,
        )
