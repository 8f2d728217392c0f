from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv


ENV_FILES_DEFAULT_ORDER = [".env", ".env.infra"]

DEFAULT_SOLUTION_ID = "ecommerce-platform-serverless"
DEFAULT_SUPPORTED_REGIONS = ["us-central1"]
DEFAULT_DEPLOYMENT_NAME_OVERRIDE = "dynamic-web-app"

DEPLOYMENT_NAME_LABEL = "goog-solutions-console-deployment-name"
SOLUTION_ID_LABEL = "goog-solutions-console-solution-id"
CONFIG_PARTNER_LABEL = "goog-config-partner"


def load_env_files(base_dir: str = ".", files: Optional[List[str]] = None) -> List[str]:
    """
    작업 디렉토리의 .env, .env.infra 를 차례로 읽어 환경변수에 반영하고
    실제로 읽은 파일 경로 목록을 돌려준다. 뒤에 읽은 파일이 우선한다.
    """
    loaded: List[str] = []
    for name in files or ENV_FILES_DEFAULT_ORDER:
        path = os.path.join(base_dir, name)
        if not os.path.isfile(path):
            continue
        load_dotenv(path, override=True)
        loaded.append(path)
    return loaded


def _get_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None:
        return list(default)
    return [p.strip() for p in raw.split(",") if p.strip()]


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} 값이 숫자가 아닙니다: {raw!r}") from e


@dataclass
class ProvisionConfig:
    # 필수
    project_id: str

    solution_id: str = DEFAULT_SOLUTION_ID
    supported_regions: List[str] = field(
        default_factory=lambda: list(DEFAULT_SUPPORTED_REGIONS)
    )
    # 비어 있으면 label 검색 결과를 그대로 사용
    deployment_name_override: Optional[str] = DEFAULT_DEPLOYMENT_NAME_OVERRIDE

    # 로컬 경로 (base_dir 기준 상대 경로 허용)
    base_dir: str = "."
    roles_file: str = "roles.txt"
    tfvars_path: str = "input.tfvars"
    local_source_dir: str = "infra"

    staging_bucket_suffix: str = "_infra_manager_staging"
    staging_bucket_location: Optional[str] = None

    modification_reason: str = "make-it-mine"
    config_partner: str = "sc"

    command_timeout: float = 900.0

    @property
    def staging_bucket_name(self) -> str:
        return f"{self.project_id}{self.staging_bucket_suffix}"

    def resolve_path(self, path: str) -> str:
        if os.path.isabs(path):
            return path
        return os.path.join(self.base_dir, path)

    def deployment_labels(self, deployment_name: str) -> Dict[str, str]:
        return {
            DEPLOYMENT_NAME_LABEL: deployment_name,
            SOLUTION_ID_LABEL: self.solution_id,
        }

    @classmethod
    def from_env(cls, project_id: Optional[str], base_dir: str = ".") -> "ProvisionConfig":
        if not project_id or not project_id.strip():
            raise ValueError("프로젝트 ID 가 비어 있습니다. -p PROJECT_ID 를 지정하세요.")

        override = os.getenv("DEPLOYMENT_NAME_OVERRIDE", DEFAULT_DEPLOYMENT_NAME_OVERRIDE)

        cfg = cls(
            project_id=project_id.strip(),
            solution_id=os.getenv("SOLUTION_ID", DEFAULT_SOLUTION_ID),
            supported_regions=_get_list("IM_SUPPORTED_REGIONS", DEFAULT_SUPPORTED_REGIONS),
            deployment_name_override=override.strip() or None,
            base_dir=base_dir,
            roles_file=os.getenv("ROLES_FILE", "roles.txt"),
            tfvars_path=os.getenv("TFVARS_PATH", "input.tfvars"),
            local_source_dir=os.getenv("LOCAL_SOURCE_DIR", "infra"),
            staging_bucket_suffix=os.getenv("STAGING_BUCKET_SUFFIX", "_infra_manager_staging"),
            staging_bucket_location=os.getenv("STAGING_BUCKET_LOCATION") or None,
            modification_reason=os.getenv("MODIFICATION_REASON", "make-it-mine"),
            config_partner=os.getenv("CONFIG_PARTNER", "sc"),
            command_timeout=_get_float("COMMAND_TIMEOUT_SECONDS", 900.0),
        )

        if not cfg.supported_regions:
            raise ValueError("IM_SUPPORTED_REGIONS 에 최소 한 개의 리전이 필요합니다.")
        if not cfg.solution_id:
            raise ValueError("SOLUTION_ID 가 비어 있습니다.")

        return cfg
