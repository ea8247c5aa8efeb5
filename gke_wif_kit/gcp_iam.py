"""
gcp_iam
-------

CI 파이프라인이 가장(impersonate)할 배포용 서비스 계정과
프로젝트 수준 IAM 역할을 준비/점검하는 모듈.
"""

from __future__ import annotations

from typing import Dict, List

from .config import SetupConfig
from .gcloud import Gcloud
from .logging_utils import get_logger
from .subprocess_utils import ControlPlaneError


logger = get_logger(__name__)


SERVICE_ACCOUNT_DESCRIPTION = "Service account for GitHub Actions CI/CD"
SERVICE_ACCOUNT_DISPLAY_NAME = "GitHub Actions Service Account"

# 순서 고정: Artifact Registry 푸시 → GKE 배포 → GKE 자격 증명 조회
REQUIRED_ROLES = [
    "roles/artifactregistry.writer",
    "roles/container.developer",
    "roles/container.clusterViewer",
]


def describe_service_account_args(email: str, project_id: str) -> List[str]:
    return ["iam", "service-accounts", "describe", email, f"--project={project_id}"]


def create_service_account_args(name: str, project_id: str) -> List[str]:
    return [
        "iam",
        "service-accounts",
        "create",
        name,
        f"--description={SERVICE_ACCOUNT_DESCRIPTION}",
        f"--display-name={SERVICE_ACCOUNT_DISPLAY_NAME}",
        f"--project={project_id}",
    ]


def grant_role_args(project_id: str, email: str, role: str) -> List[str]:
    return [
        "projects",
        "add-iam-policy-binding",
        project_id,
        f"--member=serviceAccount:{email}",
        f"--role={role}",
        "--condition=None",
    ]


def ensure_service_account(gcloud: Gcloud, cfg: SetupConfig) -> str:
    """
    배포에 사용할 서비스 계정이 존재하는지 확인하고, 없다면 생성한다.
    """
    email = cfg.service_account_email
    logger.info("배포 서비스 계정 확인: %s", email)

    if gcloud.exists(describe_service_account_args(email, cfg.project_id)):
        logger.info("기존 서비스 계정을 사용합니다: %s", email)
        return f"서비스 계정 이미 존재함 ({email})"

    gcloud.run(create_service_account_args(cfg.names.service_account, cfg.project_id))
    logger.info("서비스 계정을 생성했습니다: %s", email)
    return f"서비스 계정 생성됨 ({email})"


def ensure_iam_roles(gcloud: Gcloud, cfg: SetupConfig) -> str:
    """
    서비스 계정에 REQUIRED_ROLES 를 프로젝트 수준으로 부여한다.
    이미 있는 바인딩을 다시 추가하는 것은 no-op 이므로 사전 조회하지 않는다.
    """
    email = cfg.service_account_email
    for role in REQUIRED_ROLES:
        logger.info("IAM 역할 부여: %s -> %s", role, email)
        gcloud.run(grant_role_args(cfg.project_id, email, role))
    return "역할 부여됨: " + ", ".join(REQUIRED_ROLES)


def check_service_account(gcloud: Gcloud, email: str, project_id: str) -> bool:
    return gcloud.exists(describe_service_account_args(email, project_id))


def check_iam_roles(gcloud: Gcloud, project_id: str, email: str) -> Dict[str, bool]:
    """
    프로젝트 IAM 정책에서 서비스 계정이 가진 역할을 조회해 REQUIRED_ROLES 별 보유 여부를 반환한다.
    정책 조회가 실패하면 전부 미보유로 본다.
    """
    args = [
        "projects",
        "get-iam-policy",
        project_id,
        "--flatten=bindings[].members",
        f"--filter=bindings.members:serviceAccount:{email}",
        "--format=value(bindings.role)",
    ]
    try:
        out = gcloud.value(args)
        held = {line.strip() for line in out.splitlines() if line.strip()}
    except ControlPlaneError as e:
        logger.warning("프로젝트 IAM 정책 조회 실패: %s", e)
        held = set()

    return {role: role in held for role in REQUIRED_ROLES}
