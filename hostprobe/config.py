"""hostprobe configuration."""

from typing import Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from hostprobe.probes.registry import DispatchPolicy

DEFAULT_LISTEN = ":8080"


class ProbeSettings(BaseSettings):
    """Settings for the probe server.

    Resolution order: programmatic, environment vars (HOSTPROBE_ prefix),
    .env file, defaults.
    """

    listen: str = Field(default=DEFAULT_LISTEN, description="host:port to bind")
    default_content_type: str = Field(
        default="text/plain",
        description="Media type used when Accept negotiation is inconclusive",
    )
    dispatch_policy: DispatchPolicy = Field(
        default=DispatchPolicy.FAIL_FAST,
        description="Behaviour of dispatch-all when a probe fails",
    )
    access_log: bool = Field(default=True, description="Emit one record per request")

    model_config = SettingsConfigDict(env_prefix="HOSTPROBE_", env_file=".env", extra="ignore")

    @field_validator("default_content_type")
    @classmethod
    def _check_content_type(cls, value: str) -> str:
        # Imported here to keep config importable without the web stack
        from hostprobe.api.negotiation import SUPPORTED_MEDIA_TYPES

        if value not in SUPPORTED_MEDIA_TYPES:
            raise ValueError(
                f"Unsupported default content type '{value}'. "
                f"Expected one of: {', '.join(SUPPORTED_MEDIA_TYPES)}"
            )
        return value

    @field_validator("listen")
    @classmethod
    def _check_listen(cls, value: str) -> str:
        parse_listen_address(value)
        return value

    def bind(self) -> Tuple[str, int]:
        """The (host, port) pair to hand to the ASGI server."""
        return parse_listen_address(self.listen)


def parse_listen_address(listen: str) -> Tuple[str, int]:
    """Split a listen address such as ``:8080`` or ``127.0.0.1:9000``.

    An empty host binds every interface. Bracketed IPv6 hosts are accepted.

    Raises:
        ValueError: If the address has no valid port.
    """
    host, sep, port = listen.rpartition(":")
    if not sep:
        raise ValueError(f"Invalid listen address '{listen}': missing port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port_number = int(port)
    except ValueError:
        raise ValueError(f"Invalid listen address '{listen}': bad port '{port}'")
    if not 0 < port_number < 65536:
        raise ValueError(f"Invalid listen address '{listen}': port out of range")
    return host or "0.0.0.0", port_number


# Global settings instance
_settings: Optional[ProbeSettings] = None


def get_settings() -> ProbeSettings:
    """Get the global settings instance, loading it from the environment once."""
    global _settings
    if _settings is None:
        _settings = ProbeSettings()
    return _settings


def set_settings(settings: Optional[ProbeSettings]) -> None:
    """Replace the global settings instance. Pass None to reload on next get."""
    global _settings
    _settings = settings
