"""HTTP configuration for object storage clients."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field

DEFAULT_TIMEOUT = 60.0
VERSION = "0.1.0"
USER_AGENT = f"swiftbox/{VERSION} (Python/{sys.version_info.major}.{sys.version_info.minor})"


@dataclass
class HTTPConfig:
    """Configuration shared by every request a transport sends."""

    timeout: float = DEFAULT_TIMEOUT
    user_agent: str = USER_AGENT
    default_headers: dict[str, str] = field(default_factory=dict)

    def get_headers(self) -> dict[str, str]:
        """Build the base headers attached to every request."""
        return {
            "user-agent": self.user_agent,
            **self.default_headers,
        }


__all__ = ["HTTPConfig", "DEFAULT_TIMEOUT", "USER_AGENT", "VERSION"]
