"""
Timeout configuration shared by the async waiting helpers.

``wait_for_async_assigns`` and ``render_async`` read the same
``assert_receive_timeout`` so that both agree on how long asynchronous
work is allowed to stay pending in a test.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final, Mapping, Optional

# Milliseconds.
DEFAULT_ASSERT_RECEIVE_TIMEOUT: Final[int] = 100

TIMEOUT_ENV_VAR: Final[str] = "WAIT_FOR_ASYNC_ASSIGNS_TIMEOUT"


@dataclass(frozen=True)
class WaitConfig:
    """Immutable wait configuration, passed explicitly to ``Conn``."""

    assert_receive_timeout: int = DEFAULT_ASSERT_RECEIVE_TIMEOUT  # milliseconds

    def __post_init__(self) -> None:
        if self.assert_receive_timeout <= 0:
            raise ValueError(
                f"assert_receive_timeout must be positive, got {self.assert_receive_timeout}"
            )

    @classmethod
    def from_environment(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> WaitConfig:
        """
        Create config from the environment.

        Reads WAIT_FOR_ASYNC_ASSIGNS_TIMEOUT (milliseconds) and falls back to
        the default when it is unset or empty.
        """
        env = os.environ if environ is None else environ
        raw = env.get(TIMEOUT_ENV_VAR, "").strip()
        if not raw:
            return cls()

        try:
            timeout = int(raw)
        except ValueError:
            raise ValueError(
                f"{TIMEOUT_ENV_VAR} must be an integer number of milliseconds, got {raw!r}"
            ) from None

        return cls(assert_receive_timeout=timeout)

    @property
    def timeout_seconds(self) -> float:
        """Timeout converted for asyncio APIs."""
        return self.assert_receive_timeout / 1000


DEFAULT_WAIT_CONFIG: Final[WaitConfig] = WaitConfig()
