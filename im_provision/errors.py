from __future__ import annotations


class StageError(RuntimeError):
    """
    파이프라인 단계 실패.

    stage 는 사람이 읽는 단계 이름, exit_code 는 CLI 종료 코드로 쓰인다.
    """

    def __init__(self, stage: str, message: str, *, exit_code: int = 1) -> None:
        super().__init__(message)
        self.stage = stage
        self.exit_code = exit_code
