"""
pytest 설정:

로컬 작업 환경에 설치된 다른 버전의 gke_wif_kit 패키지가 존재할 때,
`pytest` 실행 시 site-packages 쪽이 먼저 import 되어 테스트가 깨질 수 있다.

테스트는 항상 현재 레포의 소스를 대상으로 해야 하므로, repo root 를 sys.path 최상단에 고정한다.

또한 gcloud 를 흉내 내는 FakeGcloud(상태를 가진 가짜 control plane)를 제공한다.
"""

from __future__ import annotations

import os
import sys
from typing import Optional, Sequence

import pytest


def pytest_configure() -> None:
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


from gke_wif_kit.gcloud import Gcloud  # noqa: E402
from gke_wif_kit.subprocess_utils import ControlPlaneError, RunResult  # noqa: E402


def positionals(args: Sequence[str]) -> tuple[str, ...]:
    return tuple(a for a in args if not a.startswith("-"))


def flag(args: Sequence[str], name: str) -> Optional[str]:
    prefix = f"--{name}="
    for a in args:
        if a.startswith(prefix):
            return a[len(prefix):]
    return None


class FakeGcloud(Gcloud):
    """
    gcloud 인자를 해석해 메모리 상태를 읽고/바꾸는 가짜 control plane.

    fail_on 에 positional prefix 를 주면 해당 호출에서 ControlPlaneError 를 낸다.
    """

    def __init__(
        self,
        *,
        active_project: str = "",
        project_number: str = "123456789012",
        fail_on: Optional[tuple[str, ...]] = None,
    ) -> None:
        super().__init__(show_progress=False)
        self.calls: list[list[str]] = []
        self.active_project = active_project
        self.project_number = project_number
        self.fail_on = fail_on
        self.enabled_apis: set[str] = set()
        self.repositories: set[str] = set()
        self.clusters: set[str] = set()
        self.service_accounts: set[str] = set()  # email
        self.project_roles: dict[str, set[str]] = {}  # member -> roles
        self.pools: set[str] = set()
        self.providers: dict[str, str] = {}  # name -> attribute condition
        self.sa_members: dict[str, list[str]] = {}  # email -> members

    # --- helpers ---------------------------------------------------------

    def positional_calls(self) -> list[tuple[str, ...]]:
        return [positionals(c) for c in self.calls]

    def mutating_calls(self) -> list[list[str]]:
        verbs = {"set", "enable", "create", "create-oidc", "add-iam-policy-binding"}
        return [c for c in self.calls if verbs & set(positionals(c))]

    def mutating_positionals(self) -> list[tuple[str, ...]]:
        return [positionals(c) for c in self.mutating_calls()]

    @staticmethod
    def _not_found(args: Sequence[str]) -> ControlPlaneError:
        return ControlPlaneError(
            ["gcloud", *args],
            "명령 실행 실패: gcloud (exit=1)\nstderr:\nERROR: NOT_FOUND",
            returncode=1,
            stderr="ERROR: NOT_FOUND",
        )

    # --- control plane ---------------------------------------------------

    def run(self, args, *, timeout=None, spinner_message=None):  # noqa: ANN001, ARG002
        args = list(args)
        self.calls.append(args)
        pos = positionals(args)

        if self.fail_on is not None and pos[: len(self.fail_on)] == self.fail_on:
            raise ControlPlaneError(
                ["gcloud", *args],
                "명령 실행 실패 (exit=1)\nstderr:\nERROR: (gcloud) PERMISSION_DENIED: simulated failure",
                returncode=1,
                stderr="ERROR: (gcloud) PERMISSION_DENIED: simulated failure",
            )

        out = self._dispatch(pos, args)
        return RunResult(returncode=0, stdout=out, stderr="")

    def _dispatch(self, pos: tuple[str, ...], args: list[str]) -> str:  # noqa: C901
        if pos[:3] == ("config", "set", "project"):
            self.active_project = pos[3]
            return ""
        if pos[:3] == ("config", "get-value", "project"):
            return self.active_project + "\n"
        if pos[:2] == ("services", "enable"):
            self.enabled_apis.update(pos[2:])
            return ""
        if pos[:2] == ("services", "list"):
            return "\n".join(sorted(self.enabled_apis))

        if pos[:2] == ("artifacts", "repositories"):
            return self._describe_or_create(pos[2], pos[3], self.repositories, args)
        if pos[:2] == ("container", "clusters"):
            return self._describe_or_create(pos[2], pos[3], self.clusters, args)

        if pos[:4] == ("iam", "workload-identity-pools", "providers", "describe"):
            if pos[4] not in self.providers:
                raise self._not_found(args)
            condition = self.providers[pos[4]]
            if (flag(args, "format") or "").startswith("yaml("):
                return (
                    f"attributeCondition: {condition}\n"
                    "attributeMapping:\n"
                    "  attribute.actor: assertion.actor\n"
                    "  attribute.repository: assertion.repository\n"
                    "  google.subject: assertion.sub\n"
                    "oidc:\n"
                    "  issuerUri: https://token.actions.githubusercontent.com\n"
                )
            return condition
        if pos[:4] == ("iam", "workload-identity-pools", "providers", "create-oidc"):
            self.providers[pos[4]] = flag(args, "attribute-condition") or ""
            return ""
        if pos[:2] == ("iam", "workload-identity-pools"):
            return self._describe_or_create(pos[2], pos[3], self.pools, args)

        if pos[:3] == ("iam", "service-accounts", "describe"):
            if pos[3] not in self.service_accounts:
                raise self._not_found(args)
            return ""
        if pos[:3] == ("iam", "service-accounts", "create"):
            project = flag(args, "project") or self.active_project
            self.service_accounts.add(f"{pos[3]}@{project}.iam.gserviceaccount.com")
            return ""
        if pos[:3] == ("iam", "service-accounts", "add-iam-policy-binding"):
            self.sa_members.setdefault(pos[3], []).append(flag(args, "member") or "")
            return ""
        if pos[:3] == ("iam", "service-accounts", "get-iam-policy"):
            if pos[3] not in self.service_accounts:
                raise self._not_found(args)
            return ";".join(self.sa_members.get(pos[3], []))

        if pos[:2] == ("projects", "add-iam-policy-binding"):
            member = flag(args, "member") or ""
            self.project_roles.setdefault(member, set()).add(flag(args, "role") or "")
            return ""
        if pos[:2] == ("projects", "get-iam-policy"):
            filt = flag(args, "filter") or ""
            member = filt.split("bindings.members:", 1)[-1]
            return "\n".join(sorted(self.project_roles.get(member, set())))
        if pos[:2] == ("projects", "describe"):
            return self.project_number + "\n"

        raise AssertionError(f"unexpected gcloud call: {args}")

    def _describe_or_create(self, verb: str, name: str, store: set[str], args: list[str]) -> str:
        if verb == "describe":
            if name not in store:
                raise self._not_found(args)
            return ""
        if verb == "create":
            store.add(name)
            return ""
        raise AssertionError(f"unexpected gcloud call: {args}")


@pytest.fixture
def fake_gcloud() -> FakeGcloud:
    return FakeGcloud()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in (
        "GCP_REGION",
        "GCP_ZONE",
        "ARTIFACT_REGISTRY_REPO",
        "GKE_CLUSTER_NAME",
        "SERVICE_ACCOUNT_NAME",
        "WIF_POOL_ID",
        "WIF_PROVIDER_ID",
        "CLI_SHOW_PROGRESS",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def compliant_gcloud() -> FakeGcloud:
    """alice/widgets 용 설정이 모두 끝난 demo-123 프로젝트."""
    from gke_wif_kit import gcp_iam, gcp_project, gcp_wif
    from gke_wif_kit.config import ResourceNames

    names = ResourceNames()
    email = f"{names.service_account}@demo-123.iam.gserviceaccount.com"

    fake = FakeGcloud(active_project="demo-123", project_number="987654321")
    fake.enabled_apis = set(gcp_project.REQUIRED_APIS)
    fake.service_accounts = {email}
    fake.pools = {names.pool}
    fake.providers = {names.provider: gcp_wif.attribute_condition("alice/widgets")}
    fake.project_roles = {f"serviceAccount:{email}": set(gcp_iam.REQUIRED_ROLES)}
    fake.sa_members = {email: [gcp_wif.principal_set_member("987654321", names, "alice/widgets")]}
    return fake
