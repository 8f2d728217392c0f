"""
pytest 설정:

로컬 작업 환경에 설치된 다른 버전의 im_provision 패키지가 존재할 때,
`pytest` 실행 시 site-packages 쪽이 먼저 import 되어 테스트가 깨질 수 있다.

테스트는 항상 현재 레포의 소스를 대상으로 해야 하므로, repo root 를 sys.path 최상단에 고정한다.
gcloud 호출은 FakeGcloud 로 가로채서 기록만 한다.
"""

from __future__ import annotations

import json
import os
import sys
from typing import Callable, List, Optional, Sequence, Union

import pytest


def pytest_configure() -> None:
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


Response = Union[str, dict, list, Callable[[List[str]], str]]


class FakeGcloud:
    """
    subprocess_utils.run_command 대체물.

    on(...) 으로 등록한 토큰이 모두 포함된 명령에 대해 등록한 응답을 돌려준다.
    먼저 등록한 규칙이 우선이며, 일치하는 규칙이 없으면 빈 stdout 으로 성공한다.
    """

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self._rules: list[tuple[tuple[str, ...], Response, int]] = []

    def on(self, *tokens: str, stdout: Response = "", returncode: int = 0) -> "FakeGcloud":
        self._rules.append((tokens, stdout, returncode))
        return self

    def __call__(
        self,
        cmd: Sequence[str],
        *,
        cwd: Optional[str] = None,  # noqa: ARG002
        timeout: Optional[float] = 900.0,  # noqa: ARG002
        stream_output: bool = False,  # noqa: ARG002
    ):
        from im_provision.subprocess_utils import CommandError, RunResult

        cmd = list(cmd)
        self.calls.append(cmd)
        for tokens, response, returncode in self._rules:
            if not all(t in cmd for t in tokens):
                continue
            if returncode != 0:
                raise CommandError(
                    f"fake failure: {' '.join(cmd)} (exit={returncode})",
                    cmd=cmd,
                    returncode=returncode,
                    stderr="boom",
                )
            if callable(response):
                out = response(cmd)
            elif isinstance(response, (dict, list)):
                out = json.dumps(response)
            else:
                out = response
            return RunResult(returncode=0, stdout=out, stderr="")
        return RunResult(returncode=0, stdout="", stderr="")

    def calls_with(self, *tokens: str) -> List[List[str]]:
        return [c for c in self.calls if all(t in c for t in tokens)]


@pytest.fixture
def fake_gcloud(monkeypatch: pytest.MonkeyPatch) -> FakeGcloud:
    from im_provision import subprocess_utils

    fake = FakeGcloud()
    monkeypatch.setattr(subprocess_utils, "run_command", fake)
    return fake


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "SOLUTION_ID",
        "IM_SUPPORTED_REGIONS",
        "DEPLOYMENT_NAME_OVERRIDE",
        "ROLES_FILE",
        "TFVARS_PATH",
        "LOCAL_SOURCE_DIR",
        "STAGING_BUCKET_SUFFIX",
        "STAGING_BUCKET_LOCATION",
        "MODIFICATION_REASON",
        "CONFIG_PARTNER",
        "COMMAND_TIMEOUT_SECONDS",
    ):
        # setenv 로 원래 상태를 기록해 두면 테스트 중 load_dotenv 로 들어온 값도 정리된다
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
