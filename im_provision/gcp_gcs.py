"""
gcp_gcs
-------

Infra Manager 스테이징 버킷({project}_infra_manager_staging) 준비를 담당하는 모듈.
"""

from __future__ import annotations

from google.api_core.exceptions import GoogleAPIError
from google.cloud import storage

from .config import ProvisionConfig
from .errors import StageError
from .logging_utils import get_logger


logger = get_logger(__name__)


STAGE_STAGING_BUCKET = "staging-bucket"


def ensure_staging_bucket(cfg: ProvisionConfig) -> bool:
    """
    스테이징 버킷이 존재하는지 확인하고, 없으면 생성한다.

    존재 여부 조회 자체가 실패해도 (재시도 초과 RetryError 포함) '없음' 으로 보고 생성을 시도한다.
    생성된 경우 True 를 돌려준다.
    """
    bucket_name = cfg.staging_bucket_name
    logger.info("스테이징 버킷 확인: %s", bucket_name)

    client = storage.Client(project=cfg.project_id)
    bucket = client.bucket(bucket_name)

    try:
        exists = bucket.exists()
    except GoogleAPIError as e:
        logger.warning("버킷 존재 여부 확인 실패, 생성을 시도합니다: %s", e)
        exists = False

    if exists:
        logger.info("버킷이 이미 존재합니다: %s", bucket_name)
        return False

    try:
        client.create_bucket(bucket, location=cfg.staging_bucket_location)
    except GoogleAPIError as e:
        raise StageError(STAGE_STAGING_BUCKET, f"버킷 생성 실패: {bucket_name}: {e}") from e

    logger.info(
        "버킷을 생성했습니다: %s (location=%s)",
        bucket_name,
        cfg.staging_bucket_location or "default",
    )
    return True
