from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError

from .config import ProvisionConfig
from .errors import StageError
from .logging_utils import get_logger
from .subprocess_utils import CommandError
from . import (
    gcp_gcs,
    gcp_iam,
    infra_manager,
    tfvars,
)


logger = get_logger(__name__)

# 실행 순서 그대로
ALL_STAGES: List[str] = [
    infra_manager.STAGE_RESOLVE_DEPLOYMENT,
    infra_manager.STAGE_RESOLVE_SERVICE_ACCOUNT,
    gcp_iam.STAGE_GRANT_ROLES,
    "write-tfvars",
    gcp_gcs.STAGE_STAGING_BUCKET,
    infra_manager.STAGE_APPLY,
]


@dataclass
class ProvisionResult:
    project_id: str
    region: str = ""
    deployment_name: str = ""
    discovered_name: Optional[str] = None
    service_account: str = ""
    member: str = ""
    granted_roles: List[str] = field(default_factory=list)
    skipped_roles: List[str] = field(default_factory=list)
    tfvars_path: str = ""
    bucket_name: str = ""
    bucket_created: bool = False
    completed_stages: List[str] = field(default_factory=list)

    def format_summary(self) -> str:
        lines: List[str] = []
        lines.append("# Provision summary")
        lines.append(f"- project: {self.project_id}")
        lines.append(f"- region: {self.region}")
        lines.append(f"- deployment: {self.deployment_name}")
        lines.append(f"- discovered deployment: {self.discovered_name or '(none)'}")
        lines.append(f"- service account: {self.service_account}")
        lines.append("")

        lines.append("## Granted roles")
        if self.granted_roles:
            for r in self.granted_roles:
                lines.append(f"- {r}")
        else:
            lines.append("- (none)")

        lines.append("")
        lines.append("## Already bound roles")
        if self.skipped_roles:
            for r in self.skipped_roles:
                lines.append(f"- {r}")
        else:
            lines.append("- (none)")

        lines.append("")
        lines.append("## Artifacts")
        lines.append(f"- tfvars: {self.tfvars_path}")
        status = "created" if self.bucket_created else "existing"
        lines.append(f"- staging bucket: {self.bucket_name} ({status})")

        return "\n".join(lines)


@contextmanager
def _stage(name: str, result: ProvisionResult) -> Iterator[None]:
    """
    단계 실행 래퍼. 분류되지 않은 명령 실패는 그 종료 코드를 가진 StageError 로 바꾼다.
    GCP 클라이언트/인증/파일 오류는 exit 1 StageError 로 바꾼다.
    """
    logger.info("단계 실행: %s", name)
    try:
        yield
    except StageError:
        raise
    except CommandError as e:
        raise StageError(name, str(e), exit_code=e.returncode or 1) from e
    except (GoogleAPIError, GoogleAuthError, OSError) as e:
        raise StageError(name, f"{type(e).__name__}: {e}") from e
    result.completed_stages.append(name)


def provision(cfg: ProvisionConfig) -> ProvisionResult:
    """
    배포 검색 → 서비스 계정 → IAM 역할 → tfvars → 스테이징 버킷 → apply 를
    순서대로 실행한다. 어느 단계든 실패하면 바로 중단한다 (롤백 없음).
    """
    result = ProvisionResult(project_id=cfg.project_id)

    with _stage(infra_manager.STAGE_RESOLVE_DEPLOYMENT, result):
        location = infra_manager.find_deployment(cfg)
        result.region = location.region
        result.deployment_name = location.name
        result.discovered_name = location.discovered_name

    with _stage(infra_manager.STAGE_RESOLVE_SERVICE_ACCOUNT, result):
        description = infra_manager.describe_deployment(cfg, location)
        service_account = infra_manager.resolve_service_account(description, location.name)
        result.service_account = service_account
        result.member = infra_manager.member_for_service_account(service_account)

    with _stage(gcp_iam.STAGE_GRANT_ROLES, result):
        logger.info("서비스 계정에 필요한 역할을 부여합니다: %s", service_account)
        roles = gcp_iam.load_roles(cfg.resolve_path(cfg.roles_file))
        reconciled = gcp_iam.ensure_role_bindings(
            cfg.project_id,
            result.member,
            roles,
            timeout=cfg.command_timeout,
        )
        result.granted_roles = reconciled.granted
        result.skipped_roles = reconciled.skipped

    with _stage("write-tfvars", result):
        # IAM 변경 이후의 최신 메타데이터를 다시 조회한다.
        description = infra_manager.describe_deployment(cfg, location)
        result.tfvars_path = tfvars.write_tfvars(cfg, location.name, description)

    with _stage(gcp_gcs.STAGE_STAGING_BUCKET, result):
        result.bucket_name = cfg.staging_bucket_name
        result.bucket_created = gcp_gcs.ensure_staging_bucket(cfg)

    with _stage(infra_manager.STAGE_APPLY, result):
        infra_manager.apply_deployment(cfg, location, service_account, result.tfvars_path)

    return result
