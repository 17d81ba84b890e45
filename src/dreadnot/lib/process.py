"""Command execution helper for stack modules.

``task_spawn`` runs a command on behalf of a task, logs it through the
task's baton and honors the deployment's dry-run flag.
"""

from __future__ import annotations

import asyncio
import shlex
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from dreadnot.lib.errors import CommandError

if TYPE_CHECKING:
    from dreadnot.deploy.baton import Baton
    from dreadnot.models.deployment import RunArgs


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a spawned command."""

    cmd: str
    returncode: int
    stdout: str = ""
    stderr: str = ""
    took: float = 0.0
    skipped: bool = False


async def spawn(
    cmd: Sequence[str],
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run ``cmd`` to completion and capture its output.

    Raises:
        CommandError: If the command exits with a non-zero status
        OSError: If the executable cannot be started
    """
    cmd_str = shlex.join(cmd)
    start = time.monotonic()
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=str(cwd) if cwd is not None else None,
        env=dict(env) if env is not None else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout_bytes, stderr_bytes = await proc.communicate()
    took = round(time.monotonic() - start, 3)

    stdout = stdout_bytes.decode("utf-8", errors="replace")
    stderr = stderr_bytes.decode("utf-8", errors="replace")
    returncode = proc.returncode if proc.returncode is not None else -1

    if returncode != 0:
        raise CommandError(cmd_str, returncode, stdout, stderr)
    return CommandResult(cmd=cmd_str, returncode=returncode, stdout=stdout, stderr=stderr, took=took)


async def task_spawn(
    baton: Baton,
    args: RunArgs,
    cmd: Sequence[str],
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run a command for a task, logging through the baton.

    In dry-run mode the command is only logged.

    Raises:
        CommandError: If the command fails; the failure is logged first
    """
    cmd_str = shlex.join(cmd)

    if args.dry_run:
        baton.log.info("dry run, skipping command: ${cmd}", cmd=cmd_str)
        return CommandResult(cmd=cmd_str, returncode=0, skipped=True)

    baton.log.info("executing command: ${cmd}", cmd=cmd_str)
    start = time.monotonic()
    try:
        result = await spawn(cmd, cwd=cwd, env=env)
    except CommandError as e:
        baton.log.error(
            "error executing command: ${cmd}",
            cmd=cmd_str,
            err=e,
            stdout=e.stdout,
            stderr=e.stderr,
            took=round(time.monotonic() - start, 3),
        )
        raise

    baton.log.info(
        "command successful: ${cmd}",
        cmd=cmd_str,
        stdout=result.stdout,
        stderr=result.stderr,
        took=result.took,
    )
    return result
