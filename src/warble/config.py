"""Client configuration.

ClientConfig is a frozen dataclass, immutable after creation, with
``with_*`` builders returning modified copies.
"""

from __future__ import annotations

import os
import platform
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from urllib.parse import urlsplit, urlunsplit

from warble import __version__

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 11434
DEFAULT_BASE_URL = f"http://{DEFAULT_HOST}:{DEFAULT_PORT}"
HOST_ENV = "OLLAMA_HOST"

_DEFAULT_PORTS = {"http": DEFAULT_PORT, "https": 443}


def parse_host(host: str | None) -> str:
    """Resolve a host setting into a base URL.

    - empty -> ``http://127.0.0.1:11434``
    - no scheme -> ``http://`` is assumed
    - no port -> 11434 for http, 443 for https
    - trailing slashes are stripped

    Anything ``urllib`` cannot parse falls back to the default.
    """
    host = (host or "").strip()
    if not host:
        return DEFAULT_BASE_URL

    if not host.startswith(("http://", "https://")):
        host = f"http://{host}"
    host = host.rstrip("/")

    try:
        parts = urlsplit(host)
        port = parts.port
    except ValueError:
        return DEFAULT_BASE_URL
    if not parts.hostname:
        return DEFAULT_BASE_URL

    if port is None:
        netloc = f"{parts.netloc}:{_DEFAULT_PORTS[parts.scheme]}"
        host = urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))

    return host.rstrip("/")


def user_agent() -> str:
    """``warble/<version> (<os> <arch>) Python/<version>``."""
    system = sys.platform
    machine = platform.machine() or "unknown"
    return f"warble/{__version__} ({system} {machine}) Python/{platform.python_version()}"


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Client configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = ClientConfig(base_url=parse_host("gpu-box"), timeout=300.0)
        config = config.with_header("X-Trace", "on")
    """

    # Server
    base_url: str = DEFAULT_BASE_URL

    # HTTP
    timeout: float | None = 30.0
    headers: tuple[tuple[str, str], ...] = ()

    # Streaming
    stream_timeout: float | None = None  # Per-stream deadline; None = until the body ends
    max_record_bytes: int = 16 * 1024 * 1024  # 16 MB

    user_agent: str = field(default_factory=user_agent)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ClientConfig:
        """Build a config whose base URL comes from ``OLLAMA_HOST``."""
        env = os.environ if environ is None else environ
        return cls(base_url=parse_host(env.get(HOST_ENV)))

    def with_base_url(self, base_url: str) -> ClientConfig:
        return replace(self, base_url=parse_host(base_url))

    def with_timeout(self, timeout: float | None) -> ClientConfig:
        return replace(self, timeout=timeout)

    def with_header(self, name: str, value: str) -> ClientConfig:
        """Return a copy with ``name`` set to ``value``, replacing any
        earlier value for the same (case-insensitive) name.
        """
        kept = tuple((k, v) for k, v in self.headers if k.lower() != name.lower())
        return replace(self, headers=(*kept, (name, value)))

    def request_headers(self) -> dict[str, str]:
        """Default headers first, then the configured ones on top."""
        merged = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }
        for name, value in self.headers:
            for existing in [k for k in merged if k.lower() == name.lower()]:
                del merged[existing]
            merged[name] = value
        return merged
