"""Shared utility helpers for subprocess execution, polling, and paths."""

from __future__ import annotations

import os
import shlex
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from loguru import logger

from .errors import PollTimeoutError

log = logger


@dataclass(frozen=True)
class CmdResult:
    code: int
    stdout: str
    stderr: str


class CmdError(RuntimeError):
    def __init__(self, cmd: Sequence[str] | str, result: CmdResult):
        self.cmd = cmd
        self.result = result
        super().__init__(
            f'Command failed (code={result.code}): {cmd}\n{result.stderr}'.strip()
        )


def shell_join(cmd: Sequence[str]) -> str:
    return ' '.join(shlex.quote(c) for c in cmd)


def run_cmd(
    cmd: Sequence[str],
    *,
    sudo: bool = False,
    check: bool = True,
    capture: bool = True,
    text: bool = True,
    input_text: Optional[str] = None,
    env: Optional[dict[str, str]] = None,
    cwd: Optional[Path | str] = None,
) -> CmdResult:
    original_cmd = cmd
    if sudo and os.geteuid() != 0:
        # Non-interactive sudo: fail fast if password/TTY is required.
        cmd = ['sudo', '-n', *cmd]
        log.opt(depth=1).debug(
            'Running with sudo: {}', shell_join(original_cmd)
        )
    log.opt(depth=1).debug('RUN: {}', shell_join(cmd))
    p = subprocess.run(
        cmd,
        input=input_text if input_text is not None else None,
        capture_output=capture,
        text=text,
        env=env,
        cwd=str(cwd) if cwd is not None else None,
    )
    res = CmdResult(p.returncode, p.stdout or '', p.stderr or '')
    if check and p.returncode != 0:
        log.opt(depth=1).error(
            'Command failed code={} cmd={} stderr={}',
            p.returncode,
            shell_join(cmd),
            res.stderr.strip(),
        )
        raise CmdError(cmd, res)
    if p.returncode == 0:
        log.opt(depth=1).debug('Command ok code=0 cmd={}', shell_join(cmd))
    return res


def poll(
    op: Callable[[], object],
    *,
    attempts: int,
    interval_s: float,
    sleep: Optional[Callable[[float], None]] = None,
    what: str = 'operation',
) -> int:
    """
    Call ``op`` until it returns something truthy.

    At most ``attempts`` calls are made, with ``interval_s`` seconds of sleep
    between consecutive failures (never after the last one). Returns the
    1-based index of the successful attempt.

    Raises:
        PollTimeoutError: if every attempt fails.
    """
    if attempts < 1:
        raise ValueError(f'attempts must be >= 1, got {attempts}')
    if sleep is None:
        sleep = time.sleep
    for attempt in range(1, attempts + 1):
        if op():
            log.debug('{} succeeded on attempt {}/{}', what, attempt, attempts)
            return attempt
        if attempt < attempts:
            log.debug(
                '{} not ready (attempt {}/{}); sleeping {}s',
                what,
                attempt,
                attempts,
                interval_s,
            )
            sleep(interval_s)
    raise PollTimeoutError(f'{what} timed out after {attempts} attempts', attempts)


def which(cmd: str) -> Optional[str]:
    from shutil import which as _which

    return _which(cmd)


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))
