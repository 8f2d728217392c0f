"""
gcp_iam
-------

배포 서비스 계정에 프로젝트 IAM 역할을 부여하는 모듈.

정책은 실행당 한 번만 조회하고, 이미 바인딩된 역할은 건너뛴다.
같은 정책에 대해 다시 실행하면 add-iam-policy-binding 호출이 발생하지 않는다.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from . import subprocess_utils
from .errors import StageError
from .logging_utils import get_logger
from .subprocess_utils import CommandError


logger = get_logger(__name__)


STAGE_GRANT_ROLES = "grant-roles"


@dataclass
class ReconcileResult:
    granted: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def load_roles(path: str) -> List[str]:
    """
    한 줄에 하나씩 적힌 역할 목록을 읽는다.
    빈 줄과 # 주석은 무시하며, 순서는 유지하고 중복 제거는 하지 않는다.
    """
    if not os.path.exists(path):
        raise StageError(STAGE_GRANT_ROLES, f"역할 목록 파일이 없습니다: {path}")

    roles: List[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            role = line.strip()
            if not role or role.startswith("#"):
                continue
            roles.append(role)
    return roles


def get_project_policy(project_id: str, *, timeout: Optional[float] = 900.0) -> Dict[str, Any]:
    policy = subprocess_utils.run_gcloud_json(
        ["projects", "get-iam-policy", project_id],
        timeout=timeout,
    )
    return policy or {}


def binding_exists(policy: Dict[str, Any], role: str, member: str) -> bool:
    for binding in policy.get("bindings") or []:
        if binding.get("role") == role and member in (binding.get("members") or []):
            return True
    return False


def add_role_binding(project_id: str, member: str, role: str, *, timeout: Optional[float] = 900.0) -> None:
    cmd = [
        "gcloud",
        "projects",
        "add-iam-policy-binding",
        project_id,
        f"--member={member}",
        f"--role={role}",
        "--condition=None",
    ]
    try:
        subprocess_utils.run_command(cmd, timeout=timeout)
    except CommandError as e:
        raise StageError(
            STAGE_GRANT_ROLES,
            f"IAM 정책 바인딩 추가 실패: role={role} (exit={e.returncode})",
        ) from e


def ensure_role_bindings(
    project_id: str,
    member: str,
    roles: Iterable[str],
    *,
    policy: Optional[Dict[str, Any]] = None,
    timeout: Optional[float] = 900.0,
) -> ReconcileResult:
    """
    역할마다 바인딩 존재 여부를 확인하고, 없으면 추가한다.

    policy 를 넘기지 않으면 한 번 조회한 스냅샷으로 모든 역할을 판단한다.
    첫 번째 실패에서 바로 중단하며, 그 전에 추가된 바인딩은 되돌리지 않는다.
    """
    if policy is None:
        policy = get_project_policy(project_id, timeout=timeout)

    result = ReconcileResult()
    for role in roles:
        if binding_exists(policy, role, member):
            logger.info("IAM 바인딩이 이미 존재합니다: member=%s role=%s", member, role)
            result.skipped.append(role)
            continue

        logger.info("IAM 바인딩 추가: member=%s role=%s", member, role)
        add_role_binding(project_id, member, role, timeout=timeout)
        result.granted.append(role)

    return result
