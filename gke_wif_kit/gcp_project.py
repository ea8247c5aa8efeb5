"""
gcp_project
-----------

활성 프로젝트 설정, 필수 API enable, 프로젝트 번호 조회를 담당하는 모듈.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from .config import SetupConfig
from .gcloud import Gcloud
from .logging_utils import get_logger
from .subprocess_utils import ControlPlaneError


logger = get_logger(__name__)


REQUIRED_APIS = [
    "container.googleapis.com",
    "artifactregistry.googleapis.com",
    "cloudbuild.googleapis.com",
    "iam.googleapis.com",
]


def set_project_args(project_id: str) -> List[str]:
    return ["config", "set", "project", project_id]


def enable_apis_args(project_id: str, apis: Optional[List[str]] = None) -> List[str]:
    return [
        "services",
        "enable",
        *(apis or REQUIRED_APIS),
        f"--project={project_id}",
    ]


def set_active_project(gcloud: Gcloud, cfg: SetupConfig) -> str:
    logger.info("활성 프로젝트 설정: %s", cfg.project_id)
    gcloud.run(set_project_args(cfg.project_id))
    return f"활성 프로젝트: {cfg.project_id}"


def enable_required_apis(gcloud: Gcloud, cfg: SetupConfig) -> str:
    """
    필수 API 를 enable 한다. 이미 활성화된 API 에 대해서도 gcloud 가 no-op 으로 처리한다.
    """
    logger.info("다음 API 들을 활성화합니다: %s", REQUIRED_APIS)
    gcloud.run(enable_apis_args(cfg.project_id), spinner_message="필수 API 활성화 중")
    return "API 활성화: " + ", ".join(REQUIRED_APIS)


def get_active_project(gcloud: Gcloud) -> Optional[str]:
    """gcloud 에 설정된 활성 프로젝트. 없거나 조회 실패 시 None."""
    try:
        value = gcloud.value(["config", "get-value", "project"])
    except ControlPlaneError as e:
        logger.debug("활성 프로젝트 조회 실패: %s", e)
        return None
    if not value or value == "(unset)":
        return None
    return value


def project_number_args(project_id: str) -> List[str]:
    return ["projects", "describe", project_id, "--format=value(projectNumber)"]


def get_project_number(gcloud: Gcloud, project_id: str) -> str:
    """
    프로젝트 번호 조회. principalSet 경로에는 프로젝트 ID 가 아니라 번호가 들어가야 한다.
    """
    args = project_number_args(project_id)
    number = gcloud.value(args)
    if not number:
        raise ControlPlaneError(["gcloud", *args], f"프로젝트 번호를 확인할 수 없습니다: {project_id}")
    return number


def check_required_apis(gcloud: Gcloud, project_id: str) -> Dict[str, bool]:
    """
    필수 API 별 활성화 여부. 실제 enable 은 수행하지 않는다.
    목록 조회 자체가 실패하면 전부 비활성으로 본다.
    """
    try:
        out = gcloud.value(
            [
                "services",
                "list",
                "--enabled",
                f"--project={project_id}",
                "--format=value(config.name)",
            ]
        )
        enabled = {line.strip() for line in out.splitlines() if line.strip()}
    except ControlPlaneError as e:
        logger.warning("활성화된 API 목록 조회 실패: %s", e)
        enabled = set()

    return {api: api in enabled for api in REQUIRED_APIS}
