"""
tfvars
------

배포 메타데이터로부터 Infra Manager apply 에 넘길 input.tfvars 를 만든다.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping

from .config import ProvisionConfig
from .logging_utils import get_logger


logger = get_logger(__name__)


def extract_region(description: Dict[str, Any]) -> str:
    """
    terraformBlueprint.inputValues.region.inputValue 를 꺼낸다.
    값이 없거나 구조가 다르면 빈 문자열 (검증은 하지 않는다).
    """
    node: Any = description
    for key in ("terraformBlueprint", "inputValues", "region", "inputValue"):
        if not isinstance(node, dict):
            node = None
            break
        node = node.get(key)

    if node is None:
        logger.warning("배포 메타데이터에서 region 입력값을 찾지 못했습니다.")
        return ""
    return str(node)


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_tfvars(region: str, project_id: str, labels: Mapping[str, str]) -> str:
    lines = [
        f"region={_quote(region)}",
        f"project_id = {_quote(project_id)}",
        "labels = {",
    ]
    items = [f"  {_quote(k)} = {_quote(v)}" for k, v in labels.items()]
    lines.append(",\n".join(items))
    lines.append("}")
    return "\n".join(lines) + "\n"


def write_tfvars(cfg: ProvisionConfig, deployment_name: str, description: Dict[str, Any]) -> str:
    """
    tfvars 파일을 쓰고 그 경로를 돌려준다.
    """
    region = extract_region(description)
    content = render_tfvars(region, cfg.project_id, cfg.deployment_labels(deployment_name))

    path = cfg.resolve_path(cfg.tfvars_path)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)

    logger.info("변수 파일을 생성했습니다: %s (region=%s)", path, region or "(비어 있음)")
    logger.debug("tfvars 내용:\n%s", content)
    return path
