"""
infra_manager
-------------

Infra Manager 배포 조회(list/describe)와 apply 를 담당하는 모듈.

- find_deployment         : 지원 리전을 순서대로 돌며 Solutions Console 라벨이 붙은 배포 검색
- describe_deployment     : 배포 상세(JSON) 조회
- resolve_service_account : 배포에 연결된 서비스 계정 추출
- apply_deployment        : 로컬 Terraform 소스 + tfvars 로 배포 생성/업데이트
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from . import subprocess_utils
from .config import (
    CONFIG_PARTNER_LABEL,
    DEPLOYMENT_NAME_LABEL,
    SOLUTION_ID_LABEL,
    ProvisionConfig,
)
from .errors import StageError
from .logging_utils import get_logger
from .subprocess_utils import CommandError


logger = get_logger(__name__)


STAGE_RESOLVE_DEPLOYMENT = "resolve-deployment"
STAGE_RESOLVE_SERVICE_ACCOUNT = "resolve-service-account"
STAGE_APPLY = "apply"


@dataclass(frozen=True)
class DeploymentLocation:
    region: str
    name: str
    # label 검색으로 실제 찾은 이름 (없으면 None)
    discovered_name: Optional[str] = None

    def resource_name(self, project_id: str) -> str:
        return f"projects/{project_id}/locations/{self.region}/deployments/{self.name}"


def _label_filter(solution_id: str) -> str:
    return f"labels.{DEPLOYMENT_NAME_LABEL}:* AND labels.{SOLUTION_ID_LABEL}:{solution_id}"


def list_deployment_in_region(cfg: ProvisionConfig, region: str) -> Optional[str]:
    """
    한 리전에서 라벨이 일치하는 배포 이름을 조회한다.

    조회 실패는 '해당 리전에 없음' 으로 취급한다.
    """
    cmd = [
        "gcloud",
        "infra-manager",
        "deployments",
        "list",
        f"--project={cfg.project_id}",
        f"--location={region}",
        f"--filter={_label_filter(cfg.solution_id)}",
        "--format=value(name)",
    ]
    try:
        result = subprocess_utils.run_command(cmd, timeout=cfg.command_timeout)
    except CommandError as e:
        logger.warning("리전 %s 배포 조회 실패, 다음 리전으로 넘어갑니다: %s", region, e)
        return None

    lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
    if not lines:
        return None
    if len(lines) > 1:
        logger.warning("리전 %s 에서 배포가 여러 개 검색되어 첫 번째를 사용합니다: %s", region, lines)
    # projects/P/locations/R/deployments/NAME 형식일 수 있으므로 마지막 세그먼트만 사용
    return lines[0].rsplit("/", 1)[-1]


def find_deployment(cfg: ProvisionConfig) -> DeploymentLocation:
    """
    지원 리전을 순서대로 검색해 첫 번째로 일치하는 배포를 찾는다.

    매치가 없으면 마지막으로 검색한 리전을 사용한다.
    deployment_name_override 가 설정되어 있으면 검색 결과와 상관없이 그 이름을 쓴다.
    """
    region = cfg.supported_regions[-1]
    discovered: Optional[str] = None

    for candidate in cfg.supported_regions:
        logger.info("리전에서 배포 확인 중: %s", candidate)
        name = list_deployment_in_region(cfg, candidate)
        logger.info("검색된 배포 이름: %s", name or "(없음)")
        if name:
            region = candidate
            discovered = name
            logger.info("배포를 찾았습니다: %s (region=%s)", name, candidate)
            break

    if cfg.deployment_name_override:
        if discovered and discovered != cfg.deployment_name_override:
            logger.warning(
                "검색된 배포 이름 %s 대신 고정 이름 %s 를 사용합니다. "
                "(DEPLOYMENT_NAME_OVERRIDE= 로 비우면 검색 결과를 사용)",
                discovered,
                cfg.deployment_name_override,
            )
        name = cfg.deployment_name_override
    elif discovered:
        name = discovered
    else:
        raise StageError(
            STAGE_RESOLVE_DEPLOYMENT,
            "기존 배포를 찾지 못했습니다 "
            f"(solution={cfg.solution_id}, regions={', '.join(cfg.supported_regions)})",
        )

    location = DeploymentLocation(region=region, name=name, discovered_name=discovered)
    logger.info("프로젝트: %s", cfg.project_id)
    logger.info("리전: %s", location.region)
    logger.info("배포 이름: %s", location.name)
    return location


def describe_deployment(cfg: ProvisionConfig, location: DeploymentLocation) -> Dict[str, Any]:
    """
    `gcloud infra-manager deployments describe` 결과(JSON)를 dict 로 돌려준다.
    """
    description = subprocess_utils.run_gcloud_json(
        [
            "infra-manager",
            "deployments",
            "describe",
            location.name,
            f"--project={cfg.project_id}",
            f"--location={location.region}",
        ],
        timeout=cfg.command_timeout,
    )
    if not isinstance(description, dict):
        return {}
    return description


def resolve_service_account(description: Dict[str, Any], deployment_name: str) -> str:
    service_account = (description.get("serviceAccount") or "").strip()
    if not service_account:
        raise StageError(
            STAGE_RESOLVE_SERVICE_ACCOUNT,
            f"배포 {deployment_name} 의 서비스 계정을 가져오지 못했습니다.",
        )
    logger.info("서비스 계정: %s", service_account)
    return service_account


def member_for_service_account(service_account: str) -> str:
    """
    projects/P/serviceAccounts/EMAIL 형태에서 EMAIL 만 떼어 IAM member 문자열로 만든다.
    """
    email = service_account.rstrip("/").rsplit("/", 1)[-1]
    return f"serviceAccount:{email}"


def _labels_arg(cfg: ProvisionConfig, deployment_name: str) -> str:
    labels = {"modification-reason": cfg.modification_reason}
    labels.update(cfg.deployment_labels(deployment_name))
    labels[CONFIG_PARTNER_LABEL] = cfg.config_partner
    return ",".join(f"{k}={v}" for k, v in labels.items())


def apply_deployment(
    cfg: ProvisionConfig,
    location: DeploymentLocation,
    service_account: str,
    tfvars_path: str,
) -> None:
    """
    로컬 Terraform 소스와 tfvars 로 배포를 apply(생성/업데이트) 한다.
    출력은 실시간으로 흘려보내며, 시간 제한은 두지 않는다.
    """
    source_dir = cfg.resolve_path(cfg.local_source_dir)
    if not os.path.isdir(source_dir):
        raise StageError(STAGE_APPLY, f"로컬 소스 디렉토리가 없습니다: {source_dir}")

    cmd = [
        "gcloud",
        "infra-manager",
        "deployments",
        "apply",
        location.resource_name(cfg.project_id),
        "--service-account",
        service_account,
        f"--local-source={source_dir}",
        f"--inputs-file={tfvars_path}",
        f"--labels={_labels_arg(cfg, location.name)}",
    ]

    logger.info("솔루션을 배포합니다: %s", location.resource_name(cfg.project_id))
    try:
        subprocess_utils.run_command(cmd, timeout=None, stream_output=True)
    except CommandError as e:
        raise StageError(STAGE_APPLY, f"배포 실패 (exit={e.returncode})") from e
