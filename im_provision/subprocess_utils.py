from __future__ import annotations

import json
import queue
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from textwrap import shorten
from typing import Any, Optional, Sequence

from .logging_utils import get_logger


logger = get_logger(__name__)


# 쉘 관례를 따르는 종료 코드 (명령 없음 / 타임아웃)
EXIT_COMMAND_NOT_FOUND = 127
EXIT_TIMEOUT = 124


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    """
    외부 명령(gcloud 등) 실행 실패.

    returncode 는 최상위에서 프로세스 종료 코드로 그대로 전파될 수 있다.
    """

    def __init__(
        self,
        message: str,
        *,
        cmd: Sequence[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def _failure_detail(stdout: str, stderr: str) -> str:
    stdout = (stdout or "").strip()
    stderr = (stderr or "").strip()
    if stderr:
        return "\nstderr:\n" + shorten(stderr, width=2000)
    if stdout:
        return "\nstdout:\n" + shorten(stdout, width=2000)
    return ""


def _not_found(cmd: Sequence[str]) -> CommandError:
    return CommandError(
        f"필요한 명령을 찾을 수 없습니다: {cmd[0]} (gcloud 가 설치되어 있는지 확인하세요)",
        cmd=cmd,
        returncode=EXIT_COMMAND_NOT_FOUND,
    )


def _timed_out(cmd: Sequence[str], timeout: Optional[float]) -> CommandError:
    return CommandError(
        f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}",
        cmd=cmd,
        returncode=EXIT_TIMEOUT,
    )


def _kill(proc: subprocess.Popen) -> None:
    proc.kill()
    proc.wait()


def _stream(cmd: Sequence[str], *, cwd: Optional[str], timeout: Optional[float]) -> RunResult:
    # gcloud 는 진행 로그를 stderr 로 내보내므로 STDOUT 으로 합친다.
    try:
        proc = subprocess.Popen(  # noqa: S603
            list(cmd),
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
        )
    except FileNotFoundError as e:
        raise _not_found(cmd) from e

    out_lines: list[str] = []
    deadline = None if timeout is None else time.monotonic() + float(timeout)
    q: "queue.Queue[Optional[str]]" = queue.Queue()

    def _reader() -> None:
        try:
            assert proc.stdout is not None
            for line in proc.stdout:
                q.put(line)
        finally:
            q.put(None)

    reader_thread = threading.Thread(target=_reader, daemon=True)
    reader_thread.start()

    try:
        while True:
            if deadline is not None and time.monotonic() >= deadline:
                _kill(proc)
                raise _timed_out(cmd, timeout)
            try:
                item = q.get(timeout=0.1)
            except queue.Empty:
                if proc.poll() is None:
                    continue
                # 프로세스는 끝났지만 손자 프로세스가 파이프를 열어 둔 경우
                try:
                    item = q.get(timeout=0.2)
                except queue.Empty:
                    break
            if item is None:
                break
            out_lines.append(item)
            sys.stdout.write(item)
            sys.stdout.flush()

        reader_thread.join(timeout=1.0)
        wait_timeout = None if deadline is None else max(deadline - time.monotonic(), 0.0)
        returncode = proc.wait(timeout=wait_timeout)
    except subprocess.TimeoutExpired as e:
        _kill(proc)
        raise _timed_out(cmd, timeout) from e
    finally:
        # reader 가 아직 읽는 중이면 닫지 않는다
        if proc.stdout is not None and not reader_thread.is_alive():
            proc.stdout.close()

    combined = "".join(out_lines)
    if returncode != 0:
        raise CommandError(
            f"명령 실행 실패: {' '.join(cmd)} (exit={returncode}){_failure_detail(combined, '')}",
            cmd=cmd,
            returncode=returncode,
            stdout=combined,
        )
    return RunResult(returncode=returncode, stdout=combined, stderr="")


def run_command(
    cmd: Sequence[str],
    *,
    cwd: Optional[str] = None,
    timeout: Optional[float] = 900.0,
    stream_output: bool = False,
) -> RunResult:
    """
    subprocess 실행 공통 유틸.

    - stream_output=False: stdout/stderr 캡처, 실패 시 요약 포함
    - stream_output=True : 출력을 실시간으로 터미널에 흘린다 (apply 처럼 오래 걸리는 명령)

    실패(비정상 종료, 명령 없음, 타임아웃)는 모두 CommandError 로 올린다.
    """
    logger.info("명령 실행: %s", " ".join(cmd))

    if stream_output:
        return _stream(cmd, cwd=cwd, timeout=timeout)

    try:
        result = subprocess.run(  # noqa: S603
            list(cmd),
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
        )
    except FileNotFoundError as e:
        raise _not_found(cmd) from e
    except subprocess.TimeoutExpired as e:
        raise _timed_out(cmd, timeout) from e

    stdout = result.stdout or ""
    stderr = result.stderr or ""
    if stdout:
        logger.debug("명령 stdout: %s", shorten(stdout.strip(), width=2000))
    if stderr:
        logger.debug("명령 stderr: %s", shorten(stderr.strip(), width=2000))

    if result.returncode != 0:
        raise CommandError(
            f"명령 실행 실패: {' '.join(cmd)} (exit={result.returncode})"
            f"{_failure_detail(stdout, stderr)}",
            cmd=cmd,
            returncode=result.returncode,
            stdout=stdout,
            stderr=stderr,
        )
    return RunResult(returncode=result.returncode, stdout=stdout, stderr=stderr)


def run_gcloud_json(args: Sequence[str], *, timeout: Optional[float] = 900.0) -> Any:
    """
    `gcloud <args> --format=json` 을 실행하고 결과를 파싱해 돌려준다.
    출력이 비어 있으면 None.
    """
    result = run_command(["gcloud", *args, "--format=json"], timeout=timeout)
    text = result.stdout.strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise CommandError(
            f"gcloud JSON 출력 파싱 실패: gcloud {' '.join(args)}: {e}",
            cmd=["gcloud", *args],
            returncode=1,
            stdout=result.stdout,
        ) from e
