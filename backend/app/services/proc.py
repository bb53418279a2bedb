# app/services/proc.py
# 외부 CLI(ffmpeg, whisper) 실행 유틸

from __future__ import annotations

import asyncio
import logging
from typing import Sequence, Tuple

log = logging.getLogger(__name__)


class CommandError(Exception):
    """명령 실패. missing=True면 실행 파일이 PATH에 없음"""

    def __init__(self, message: str, returncode: int | None = None, missing: bool = False):
        super().__init__(message)
        self.returncode = returncode
        self.missing = missing


async def run_command(cmd: str, args: Sequence[str], cwd: str | None = None) -> Tuple[str, str]:
    # (stdout, stderr) 반환. 0이 아닌 종료코드면 stderr를 메시지로 CommandError
    try:
        proc = await asyncio.create_subprocess_exec(
            cmd,
            *args,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise CommandError(f"{cmd} not found on PATH", missing=True) from e

    out, err = await proc.communicate()
    stdout = out.decode("utf-8", errors="replace")
    stderr = err.decode("utf-8", errors="replace")
    if proc.returncode != 0:
        log.debug("%s exited with %s", cmd, proc.returncode)
        raise CommandError(stderr.strip() or f"{cmd} exited with code {proc.returncode}", returncode=proc.returncode)
    return stdout, stderr
