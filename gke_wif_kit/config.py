from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv


ENV_FILES_DEFAULT_ORDER = [".env", ".env.gke-wif"]

DEFAULT_REGION = "us-central1"
DEFAULT_ZONE = "us-central1-a"

# <owner>/<name>, 양쪽 모두 영숫자/하이픈/언더스코어
REPOSITORY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+/[A-Za-z0-9_-]+$")


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


def validate_repository(value: str) -> str:
    repo = (value or "").strip()
    if not REPOSITORY_PATTERN.match(repo):
        raise ValueError(
            f"잘못된 저장소 형식입니다: {value!r} (형식: username/repo-name)"
        )
    return repo


def validate_project_id(value: str) -> str:
    project_id = (value or "").strip()
    if not project_id:
        raise ValueError("프로젝트 ID 는 비어 있을 수 없습니다.")
    return project_id


def default_region() -> str:
    return os.getenv("GCP_REGION") or DEFAULT_REGION


def default_zone() -> str:
    return os.getenv("GCP_ZONE") or DEFAULT_ZONE


@dataclass(frozen=True)
class ResourceNames:
    # 원본 튜토리얼과 동일한 기본 이름
    artifact_repo: str = "my-docker-repo"
    cluster: str = "my-gke-cluster"
    service_account: str = "github-actions-sa"
    pool: str = "github-pool"
    provider: str = "github-provider"

    @classmethod
    def from_env(cls) -> "ResourceNames":
        base = cls()
        return cls(
            artifact_repo=os.getenv("ARTIFACT_REGISTRY_REPO") or base.artifact_repo,
            cluster=os.getenv("GKE_CLUSTER_NAME") or base.cluster,
            service_account=os.getenv("SERVICE_ACCOUNT_NAME") or base.service_account,
            pool=os.getenv("WIF_POOL_ID") or base.pool,
            provider=os.getenv("WIF_PROVIDER_ID") or base.provider,
        )


def service_account_email(name: str, project_id: str) -> str:
    return f"{name}@{project_id}.iam.gserviceaccount.com"


@dataclass(frozen=True)
class SetupConfig:
    """
    setup 명령의 입력값. CLI 경계에서 한 번 만들어지고,
    이후 프로비저닝 로직에는 순수 입력으로만 전달된다.
    """

    repository: str
    project_id: str
    region: str = DEFAULT_REGION
    zone: str = DEFAULT_ZONE
    confirmed: bool = False
    names: ResourceNames = field(default_factory=ResourceNames)

    @classmethod
    def build(
        cls,
        *,
        repository: str,
        project_id: str,
        region: str = "",
        zone: str = "",
        confirmed: bool = False,
        names: Optional[ResourceNames] = None,
    ) -> "SetupConfig":
        # 원격 호출 전에 모든 입력을 검증한다.
        return cls(
            repository=validate_repository(repository),
            project_id=validate_project_id(project_id),
            region=(region or "").strip() or DEFAULT_REGION,
            zone=(zone or "").strip() or DEFAULT_ZONE,
            confirmed=confirmed,
            names=names or ResourceNames(),
        )

    @property
    def service_account_email(self) -> str:
        return service_account_email(self.names.service_account, self.project_id)

    @property
    def workload_pool(self) -> str:
        return f"{self.project_id}.svc.id.goog"
