"""
Route preflight checks.

Before a route is attempted the engine asks whether it can work at all:
- graphql and rest need a credential
- cli needs the tool installed and authenticated

A failed preflight skips the route without calling its transport.

CLI availability is either supplied by the caller or detected by running
``<cli> --version`` and ``<cli> auth status`` through the caller's
runner. Detection results are cached per runner for 30 seconds, and
concurrent detections for one runner share a single probe.
"""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..envelope import RouteSource
from ..errors import ErrorCode

if TYPE_CHECKING:
    from ..adapters.cli import CliCommandRunner

logger = logging.getLogger(__name__)

CLI_ENV_CACHE_TTL_SECONDS = 30.0
CLI_VERSION_TIMEOUT_MS = 1_500
CLI_AUTH_TIMEOUT_MS = 2_500


@dataclass(frozen=True, slots=True)
class PreflightResult:
    ok: bool
    code: ErrorCode | None = None
    message: str | None = None

    @classmethod
    def passed(cls) -> PreflightResult:
        return cls(ok=True)

    @classmethod
    def failed(cls, code: ErrorCode, message: str) -> PreflightResult:
        return cls(ok=False, code=code, message=message)


def preflight_check(
    route: RouteSource,
    *,
    token_present: bool = False,
    cli_available: bool = False,
    cli_authenticated: bool = False,
) -> PreflightResult:
    """Whether a route can be attempted in the current environment."""
    if route in (RouteSource.GRAPHQL, RouteSource.REST):
        if not token_present:
            return PreflightResult.failed(
                ErrorCode.AUTH, f"{route.value} route requires an API token"
            )
        return PreflightResult.passed()

    if not cli_available:
        return PreflightResult.failed(
            ErrorCode.ADAPTER_UNSUPPORTED, "CLI route requires the command-line tool to be installed"
        )
    if not cli_authenticated:
        return PreflightResult.failed(ErrorCode.AUTH, "CLI route requires the command-line tool to be authenticated")
    return PreflightResult.passed()


# =============================================================================
# CLI environment detection
# =============================================================================


@dataclass(frozen=True, slots=True)
class CliEnvironment:
    available: bool
    authenticated: bool


@dataclass
class CliEnvironmentProbe:
    """
    Detects and caches whether the CLI is installed and logged in.

    Thread-safety: an asyncio.Lock coalesces concurrent detections.
    """

    command: str = "gh"
    ttl_seconds: float = CLI_ENV_CACHE_TTL_SECONDS
    _value: CliEnvironment | None = field(default=None, init=False)
    _expires_at: float = field(default=0.0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    async def detect(self, runner: CliCommandRunner) -> CliEnvironment:
        if self._value is not None and time.monotonic() < self._expires_at:
            return self._value

        async with self._lock:
            if self._value is not None and time.monotonic() < self._expires_at:
                return self._value
            self._value = await self._probe(runner)
            self._expires_at = time.monotonic() + self.ttl_seconds
            logger.debug(
                f"[cli_probe] {self.command}: available={self._value.available} "
                f"authenticated={self._value.authenticated}"
            )
            return self._value

    async def _probe(self, runner: CliCommandRunner) -> CliEnvironment:
        try:
            version = await runner.run(self.command, ["--version"], CLI_VERSION_TIMEOUT_MS)
            if version.exit_code != 0:
                return CliEnvironment(available=False, authenticated=False)
            auth = await runner.run(self.command, ["auth", "status"], CLI_AUTH_TIMEOUT_MS)
        except (OSError, asyncio.TimeoutError) as e:
            logger.info(f"[cli_probe] {self.command} not usable: {e}")
            return CliEnvironment(available=False, authenticated=False)
        return CliEnvironment(available=True, authenticated=auth.exit_code == 0)

    def invalidate(self) -> None:
        self._value = None
        self._expires_at = 0.0


_probes: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()


def get_cli_probe(runner: CliCommandRunner, command: str = "gh") -> CliEnvironmentProbe:
    """The shared probe for a runner, created on first use."""
    by_command = _probes.setdefault(runner, {})
    probe = by_command.get(command)
    if probe is None:
        probe = CliEnvironmentProbe(command)
        by_command[command] = probe
    return probe
