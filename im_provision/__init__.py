"""
im_provision
------------

Solutions Console 로 배포된 Infra Manager 배포를 "내 것으로" 가져오는 CLI 패키지.
기존 배포와 서비스 계정을 찾고, IAM 역할 부여 / tfvars 생성 / 스테이징 버킷 준비 후
로컬 Terraform 소스로 배포를 다시 apply 한다.
"""

__all__ = [
    "config",
    "orchestrator",
]
