"""
gcp_artifact_registry
---------------------

CI 파이프라인이 이미지를 푸시할 Artifact Registry 리포지토리를 준비하는 모듈.
"""

from __future__ import annotations

from typing import List

from .config import SetupConfig
from .gcloud import Gcloud
from .logging_utils import get_logger


logger = get_logger(__name__)


REPOSITORY_DESCRIPTION = "Docker repository for CI/CD pipeline"


def describe_repository_args(cfg: SetupConfig) -> List[str]:
    return [
        "artifacts",
        "repositories",
        "describe",
        cfg.names.artifact_repo,
        f"--location={cfg.region}",
        f"--project={cfg.project_id}",
    ]


def create_repository_args(cfg: SetupConfig) -> List[str]:
    return [
        "artifacts",
        "repositories",
        "create",
        cfg.names.artifact_repo,
        "--repository-format=docker",
        f"--location={cfg.region}",
        f"--description={REPOSITORY_DESCRIPTION}",
        f"--project={cfg.project_id}",
    ]


def ensure_repository(gcloud: Gcloud, cfg: SetupConfig) -> str:
    """
    Artifact Registry 리포가 존재하는지 확인하고,
    없으면 생성한다.
    """
    repo = cfg.names.artifact_repo
    logger.info("Artifact Registry 리포 확인: %s (%s)", repo, cfg.region)

    if gcloud.exists(describe_repository_args(cfg)):
        logger.info("기존 Artifact Registry 리포를 사용합니다: %s", repo)
        return f"리포지토리 이미 존재함 ({repo})"

    gcloud.run(create_repository_args(cfg))
    logger.info("Artifact Registry 리포를 생성했습니다: %s", repo)
    return f"리포지토리 생성됨 ({repo}, {cfg.region})"


def image_registry(cfg: SetupConfig) -> str:
    """CI 에서 docker tag/push 할 때 쓰는 레지스트리 경로."""
    return f"{cfg.region}-docker.pkg.dev/{cfg.project_id}/{cfg.names.artifact_repo}"
