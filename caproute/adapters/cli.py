"""
CLI route.

Runs a capability through the command-line tool described by the card's
``cli`` block:

    cli:
      command: "issue view {issueNumber} --repo {owner}/{name}"
      jsonFields: [id, number, title, state]
      jq: ".labels |= map(.name)"

The command template is split into arguments first and then each
argument is formatted with the request parameters, so values containing
spaces stay one argument. ``--json`` and ``--jq`` are appended when
configured, and stdout is parsed as JSON.

Process execution sits behind ``CliCommandRunner`` so tests and
embedding applications can substitute their own runner.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shlex
from dataclasses import dataclass
from string import Formatter
from typing import Any, Protocol, runtime_checkable

from ..errors import CaprouteError, CliTemplateError, ErrorCode, map_error_to_code
from ..registry.schemas import OperationCard

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CliResult:
    stdout: str
    stderr: str
    exit_code: int


@runtime_checkable
class CliCommandRunner(Protocol):
    """Runs one process and reports its output."""

    async def run(self, command: str, args: list[str], timeout_ms: int) -> CliResult:
        ...


class SubprocessCliRunner:
    """CliCommandRunner on asyncio subprocesses. No shell is involved."""

    async def run(self, command: str, args: list[str], timeout_ms: int) -> CliResult:
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise TimeoutError(f"{command} timed out after {timeout_ms}ms")

        return CliResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=process.returncode if process.returncode is not None else -1,
        )


def _format_argument(template: str, params: dict[str, Any]) -> str:
    for _, field_name, _, _ in Formatter().parse(template):
        if field_name is not None and field_name not in params:
            raise CliTemplateError(f"CLI command requires parameter '{field_name}'")
    return template.format_map(params)


def build_cli_args(card: OperationCard, params: dict[str, Any]) -> list[str]:
    """
    Arguments for a card's CLI command.

    Raises:
        CliTemplateError: If the card has no CLI block or a placeholder is missing
    """
    if card.cli is None:
        raise CliTemplateError(f"Capability '{card.capability_id}' has no CLI command")

    args = [_format_argument(token, params) for token in shlex.split(card.cli.command)]
    if card.cli.json_fields:
        args += ["--json", ",".join(card.cli.json_fields)]
    if card.cli.jq:
        args += ["--jq", card.cli.jq]
    return args


def parse_cli_output(stdout: str) -> Any:
    text = stdout.strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise CaprouteError(f"CLI output was not valid JSON: {e.msg}", code=ErrorCode.UNKNOWN) from e


async def run_cli_capability(
    runner: CliCommandRunner,
    card: OperationCard,
    params: dict[str, Any],
    *,
    command: str = "gh",
    timeout_ms: int = 10_000,
) -> Any:
    """
    Execute a card over the CLI and return the parsed output.

    Raises:
        CaprouteError: With a code derived from stderr when the command fails
    """
    args = build_cli_args(card, params)
    logger.debug(f"[cli] {card.capability_id}: {command} {' '.join(args[:2])} ...")

    try:
        result = await runner.run(command, args, timeout_ms)
    except FileNotFoundError as e:
        raise CaprouteError(f"CLI executable '{command}' not found", code=ErrorCode.ADAPTER_UNSUPPORTED) from e

    if result.exit_code != 0:
        message = result.stderr.strip() or f"{command} exited with status {result.exit_code}"
        raise CaprouteError(message, code=map_error_to_code(message), details={"exit_code": result.exit_code})

    return parse_cli_output(result.stdout)
