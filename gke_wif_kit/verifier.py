"""
verifier
--------

이미 구성된 환경을 읽기 전용으로 점검한다. 리소스를 만들거나 바꾸지 않고,
빠진 항목마다 그대로 복사해 실행할 수 있는 gcloud 명령을 안내한다.

각 체크는 독립적이다. 조회 실패는 '없음'으로 간주하고 다음 체크로 넘어간다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .config import ResourceNames, service_account_email
from .gcloud import Gcloud, command_line
from .logging_utils import get_logger
from .output import ERROR, INFO, SUCCESS, WARNING
from .subprocess_utils import ControlPlaneError
from . import gcp_iam, gcp_project, gcp_wif


logger = get_logger(__name__)


class NoActiveProjectError(RuntimeError):
    pass


@dataclass(frozen=True)
class ReportLine:
    check: str
    text: str
    # None 이면 상태 태그 없는 상세/조치 라인
    level: Optional[str] = None


@dataclass
class VerifyReport:
    project_id: str
    project_number: Optional[str] = None
    lines: List[ReportLine] = field(default_factory=list)
    secrets: Optional[gcp_wif.CISecrets] = None

    def count(self, level: str) -> int:
        return sum(1 for line in self.lines if line.level == level)

    @property
    def has_issues(self) -> bool:
        return bool(self.count(ERROR) or self.count(WARNING))


class _RepositoryAnswer:
    """저장소 이름은 필요할 때 한 번만 물어보고 재사용한다."""

    def __init__(self, ask: Callable[[], str], preset: Optional[str] = None) -> None:
        self._ask = ask
        self._value = preset

    def get(self) -> str:
        if self._value is None:
            self._value = self._ask()
        return self._value


class _Reporter:
    def __init__(self, report: VerifyReport, on_line: Optional[Callable[[ReportLine], None]]) -> None:
        self.report = report
        self.on_line = on_line

    def emit(self, check: str, text: str, level: Optional[str] = None) -> None:
        line = ReportLine(check=check, text=text, level=level)
        self.report.lines.append(line)
        if self.on_line is not None:
            self.on_line(line)

    def command(self, check: str, label: str, args: List[str]) -> None:
        self.emit(check, label)
        self.emit(check, command_line(args))


def _check_apis(out: _Reporter, gcloud: Gcloud, project_id: str) -> None:
    out.emit("apis", "Step 1: 필수 API 확인 중...", INFO)
    for api, enabled in gcp_project.check_required_apis(gcloud, project_id).items():
        if enabled:
            out.emit("apis", f"{api} 활성화됨", SUCCESS)
        else:
            out.emit("apis", f"{api} 비활성화 상태입니다.", ERROR)
            out.command("apis", "활성화 명령:", gcp_project.enable_apis_args(project_id, [api]))


def _check_service_account(out: _Reporter, gcloud: Gcloud, project_id: str, names: ResourceNames, email: str) -> None:
    out.emit("service-account", "Step 2: 서비스 계정 확인 중...", INFO)
    if gcp_iam.check_service_account(gcloud, email, project_id):
        out.emit("service-account", f"서비스 계정 존재함: {email}", SUCCESS)
    else:
        out.emit("service-account", f"서비스 계정이 없습니다: {email}", ERROR)
        out.command(
            "service-account",
            "생성 명령:",
            gcp_iam.create_service_account_args(names.service_account, project_id),
        )


def _check_pool(out: _Reporter, gcloud: Gcloud, project_id: str, names: ResourceNames) -> None:
    out.emit("wif-pool", "Step 3: Workload identity pool 확인 중...", INFO)
    if gcp_wif.check_pool(gcloud, names, project_id):
        out.emit("wif-pool", f"Workload identity pool '{names.pool}' 존재함", SUCCESS)
    else:
        out.emit("wif-pool", f"Workload identity pool '{names.pool}' 이 없습니다.", ERROR)
        out.command("wif-pool", "생성 명령:", gcp_wif.create_pool_args(names, project_id))


def _check_provider(
    out: _Reporter,
    gcloud: Gcloud,
    project_id: str,
    names: ResourceNames,
    repository: _RepositoryAnswer,
) -> None:
    out.emit("wif-provider", "Step 4: Workload identity provider 확인 중...", INFO)
    described = gcp_wif.describe_provider(gcloud, names, project_id)
    if described is not None:
        out.emit("wif-provider", f"Workload identity provider '{names.provider}' 존재함", SUCCESS)
        # condition 이 실제 저장소와 같은지는 운영자가 눈으로 비교한다.
        out.emit("wif-provider", "Provider 설정:")
        for line in described.splitlines():
            out.emit("wif-provider", line)
        return

    out.emit("wif-provider", f"Workload identity provider '{names.provider}' 가 없습니다.", ERROR)
    repo = repository.get()
    out.command(
        "wif-provider",
        "생성 명령:",
        gcp_wif.create_provider_args(names, project_id, repo),
    )


def _check_roles(out: _Reporter, gcloud: Gcloud, project_id: str, email: str) -> None:
    out.emit("iam-roles", "Step 5: 서비스 계정 IAM 역할 확인 중...", INFO)
    for role, held in gcp_iam.check_iam_roles(gcloud, project_id, email).items():
        if held:
            out.emit("iam-roles", f"서비스 계정이 역할을 보유함: {role}", SUCCESS)
        else:
            out.emit("iam-roles", f"서비스 계정에 역할이 없습니다: {role}", WARNING)
            out.command("iam-roles", "부여 명령:", gcp_iam.grant_role_args(project_id, email, role))


def _check_binding(
    out: _Reporter,
    gcloud: Gcloud,
    project_id: str,
    project_number: Optional[str],
    names: ResourceNames,
    email: str,
    repository: _RepositoryAnswer,
) -> None:
    out.emit("wif-binding", "Step 6: Workload identity 바인딩 확인 중...", INFO)
    if project_number is None:
        out.emit("wif-binding", f"프로젝트 번호를 확인할 수 없어 바인딩을 점검하지 못했습니다: {project_id}", ERROR)
        return

    if gcp_wif.check_federation_binding(gcloud, email, project_id, project_number, names):
        out.emit("wif-binding", "Workload identity 바인딩 존재함", SUCCESS)
        return

    out.emit("wif-binding", "Workload identity 바인딩이 없습니다.", ERROR)
    member = gcp_wif.principal_set_member(project_number, names, repository.get())
    out.command(
        "wif-binding",
        "생성 명령:",
        gcp_wif.bind_federation_args(email, member, project_id),
    )


def _emit_secrets(out: _Reporter, project_id: str, project_number: Optional[str], names: ResourceNames) -> None:
    out.emit("ci-secrets", "Step 7: GitHub secret 값", INFO)
    if project_number is None:
        out.emit("ci-secrets", "프로젝트 번호를 확인할 수 없어 GCP_WORKLOAD_IDENTITY_PROVIDER 를 계산하지 못했습니다.", ERROR)
        return
    out.report.secrets = gcp_wif.ci_secrets(project_id, project_number, names)


def verify(
    gcloud: Gcloud,
    names: ResourceNames,
    ask_repository: Callable[[], str],
    *,
    repository: Optional[str] = None,
    on_line: Optional[Callable[[ReportLine], None]] = None,
) -> VerifyReport:
    """
    현재 활성 프로젝트의 설정 상태를 점검한다.

    Raises:
        NoActiveProjectError: gcloud 에 활성 프로젝트가 설정되어 있지 않은 경우 (유일한 치명적 오류)
    """
    project_id = gcp_project.get_active_project(gcloud)
    if not project_id:
        raise NoActiveProjectError(
            "프로젝트가 설정되어 있지 않습니다. 실행: gcloud config set project YOUR_PROJECT_ID"
        )

    report = VerifyReport(project_id=project_id)
    out = _Reporter(report, on_line)
    out.emit("project", f"점검 대상 프로젝트: {project_id}", INFO)

    email = service_account_email(names.service_account, project_id)
    repo = _RepositoryAnswer(ask_repository, repository)

    try:
        report.project_number = gcp_project.get_project_number(gcloud, project_id)
    except ControlPlaneError as e:
        logger.warning("프로젝트 번호 조회 실패: %s", e)

    _check_apis(out, gcloud, project_id)
    _check_service_account(out, gcloud, project_id, names, email)
    _check_pool(out, gcloud, project_id, names)
    _check_provider(out, gcloud, project_id, names, repo)
    _check_roles(out, gcloud, project_id, email)
    _check_binding(out, gcloud, project_id, report.project_number, names, email, repo)
    _emit_secrets(out, project_id, report.project_number, names)

    return report
