from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from .config import SetupConfig
from .gcloud import Gcloud, command_line
from .logging_utils import get_logger
from .subprocess_utils import ControlPlaneError
from . import (
    gcp_artifact_registry,
    gcp_gke,
    gcp_iam,
    gcp_project,
    gcp_wif,
)


logger = get_logger(__name__)


PROJECT_NUMBER_PLACEHOLDER = "<PROJECT_NUMBER>"


@dataclass(frozen=True)
class StepResult:
    name: str
    ok: bool
    detail: str = ""
    error: Optional[str] = None


@dataclass
class ProvisionContext:
    """단계 사이에 전달되는 상태. 전역 변수 대신 명시적으로 넘긴다."""

    cfg: SetupConfig
    project_number: Optional[str] = None
    secrets: Optional[gcp_wif.CISecrets] = None


@dataclass
class ProvisionResult:
    steps: List[StepResult] = field(default_factory=list)
    cancelled: bool = False
    secrets: Optional[gcp_wif.CISecrets] = None

    @property
    def ok(self) -> bool:
        return not self.cancelled and all(s.ok for s in self.steps)

    @property
    def failed_step(self) -> Optional[StepResult]:
        for s in self.steps:
            if not s.ok:
                return s
        return None


def _set_project(gcloud: Gcloud, ctx: ProvisionContext) -> str:
    return gcp_project.set_active_project(gcloud, ctx.cfg)


def _enable_apis(gcloud: Gcloud, ctx: ProvisionContext) -> str:
    return gcp_project.enable_required_apis(gcloud, ctx.cfg)


def _artifact_repository(gcloud: Gcloud, ctx: ProvisionContext) -> str:
    return gcp_artifact_registry.ensure_repository(gcloud, ctx.cfg)


def _cluster(gcloud: Gcloud, ctx: ProvisionContext) -> str:
    return gcp_gke.ensure_cluster(gcloud, ctx.cfg)


def _service_account(gcloud: Gcloud, ctx: ProvisionContext) -> str:
    return gcp_iam.ensure_service_account(gcloud, ctx.cfg)


def _iam_roles(gcloud: Gcloud, ctx: ProvisionContext) -> str:
    return gcp_iam.ensure_iam_roles(gcloud, ctx.cfg)


def _pool(gcloud: Gcloud, ctx: ProvisionContext) -> str:
    return gcp_wif.ensure_pool(gcloud, ctx.cfg)


def _provider(gcloud: Gcloud, ctx: ProvisionContext) -> str:
    return gcp_wif.ensure_provider(gcloud, ctx.cfg)


def _federation_binding(gcloud: Gcloud, ctx: ProvisionContext) -> str:
    ctx.project_number = gcp_project.get_project_number(gcloud, ctx.cfg.project_id)
    return gcp_wif.ensure_federation_binding(gcloud, ctx.cfg, ctx.project_number)


def _ci_secrets(gcloud: Gcloud, ctx: ProvisionContext) -> str:  # noqa: ARG001
    if ctx.project_number is None:
        raise ControlPlaneError(
            ["gcloud", *gcp_project.project_number_args(ctx.cfg.project_id)],
            f"프로젝트 번호가 확인되지 않아 GitHub secret 값을 계산할 수 없습니다: {ctx.cfg.project_id}",
        )
    ctx.secrets = gcp_wif.ci_secrets(ctx.cfg.project_id, ctx.project_number, ctx.cfg.names)
    return "GitHub secret 값 계산 완료"


StepFn = Callable[[Gcloud, ProvisionContext], str]

# 순서가 곧 계약이다. 앞 단계가 실패하면 뒤 단계는 실행하지 않는다.
PROVISION_STEPS: List[Tuple[str, StepFn]] = [
    ("project", _set_project),
    ("apis", _enable_apis),
    ("artifact-registry", _artifact_repository),
    ("gke-cluster", _cluster),
    ("service-account", _service_account),
    ("iam-roles", _iam_roles),
    ("wif-pool", _pool),
    ("wif-provider", _provider),
    ("wif-binding", _federation_binding),
    ("ci-secrets", _ci_secrets),
]

STEP_TITLES = {
    "project": "GCP 프로젝트 설정",
    "apis": "필수 API 활성화",
    "artifact-registry": "Artifact Registry 리포지토리",
    "gke-cluster": "GKE 클러스터 (수 분 소요될 수 있음)",
    "service-account": "서비스 계정",
    "iam-roles": "서비스 계정 IAM 역할",
    "wif-pool": "Workload Identity pool",
    "wif-provider": "Workload Identity provider",
    "wif-binding": "Workload Identity 바인딩",
    "ci-secrets": "GitHub secret 값",
}


def provision(
    gcloud: Gcloud,
    cfg: SetupConfig,
    on_step: Optional[Callable[[StepResult], None]] = None,
) -> ProvisionResult:
    """
    PROVISION_STEPS 를 순서대로 실행한다.

    - cfg.confirmed 가 False 면 원격 호출 없이 cancelled 로 끝난다.
    - 단계 실패 시 gcloud 의 오류 메시지를 그대로 StepResult.error 에 담고 즉시 중단한다.
      이미 만들어진 리소스는 되돌리지 않는다.
    """
    if not cfg.confirmed:
        logger.info("사용자가 진행을 확인하지 않아 프로비저닝을 취소합니다.")
        return ProvisionResult(cancelled=True)

    ctx = ProvisionContext(cfg=cfg)
    result = ProvisionResult()

    for name, fn in PROVISION_STEPS:
        logger.info("단계 실행: %s", name)
        try:
            detail = fn(gcloud, ctx)
            step = StepResult(name=name, ok=True, detail=detail)
        except ControlPlaneError as e:
            logger.error("단계 실행 실패: %s", name)
            step = StepResult(name=name, ok=False, error=str(e))

        result.steps.append(step)
        if on_step is not None:
            on_step(step)
        if not step.ok:
            return result

    result.secrets = ctx.secrets
    return result


def plan_commands(cfg: SetupConfig) -> List[Tuple[str, List[str]]]:
    """
    setup 이 실행할 단계별 gcloud 명령 목록. 원격 호출은 하지 않는다.
    create 계열은 describe 로 존재 여부를 먼저 확인한 뒤 없을 때만 실행된다.
    """
    names = cfg.names
    project = cfg.project_id
    email = cfg.service_account_email
    member = gcp_wif.principal_set_member(PROJECT_NUMBER_PLACEHOLDER, names, cfg.repository)

    return [
        ("project", [command_line(gcp_project.set_project_args(project))]),
        ("apis", [command_line(gcp_project.enable_apis_args(project))]),
        ("artifact-registry", [command_line(gcp_artifact_registry.create_repository_args(cfg))]),
        ("gke-cluster", [command_line(gcp_gke.create_cluster_args(cfg))]),
        ("service-account", [command_line(gcp_iam.create_service_account_args(names.service_account, project))]),
        ("iam-roles", [command_line(gcp_iam.grant_role_args(project, email, role)) for role in gcp_iam.REQUIRED_ROLES]),
        ("wif-pool", [command_line(gcp_wif.create_pool_args(names, project))]),
        ("wif-provider", [command_line(gcp_wif.create_provider_args(names, project, cfg.repository))]),
        ("wif-binding", [command_line(gcp_wif.bind_federation_args(email, member, project))]),
        ("ci-secrets", []),
    ]
