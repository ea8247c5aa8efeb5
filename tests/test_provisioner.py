import pytest

from gke_wif_kit import provisioner
from gke_wif_kit.config import SetupConfig
from gke_wif_kit.subprocess_utils import ControlPlaneError


def _cfg(confirmed: bool = True) -> SetupConfig:
    return SetupConfig.build(
        repository="alice/widgets",
        project_id="demo-123",
        confirmed=confirmed,
    )


EXPECTED_ORDER = [
    ("config", "set", "project", "demo-123"),
    ("services", "enable"),
    ("artifacts", "repositories", "create", "my-docker-repo"),
    ("container", "clusters", "create", "my-gke-cluster"),
    ("iam", "service-accounts", "create", "github-actions-sa"),
    ("projects", "add-iam-policy-binding", "demo-123"),
    ("projects", "add-iam-policy-binding", "demo-123"),
    ("projects", "add-iam-policy-binding", "demo-123"),
    ("iam", "workload-identity-pools", "create", "github-pool"),
    ("iam", "workload-identity-pools", "providers", "create-oidc", "github-provider"),
    ("iam", "service-accounts", "add-iam-policy-binding", "github-actions-sa@demo-123.iam.gserviceaccount.com"),
]


def _positional_prefixes(fake) -> list[tuple[str, ...]]:  # noqa: ANN001
    return [
        pos[: len(expected)]
        for pos, expected in zip(fake.mutating_positionals(), EXPECTED_ORDER)
    ]


def test_declined_confirmation_makes_no_remote_calls(fake_gcloud) -> None:  # noqa: ANN001
    result = provisioner.provision(fake_gcloud, _cfg(confirmed=False))

    assert result.cancelled
    assert result.steps == []
    assert fake_gcloud.calls == []


def test_provision_issues_calls_in_documented_order(fake_gcloud) -> None:  # noqa: ANN001
    result = provisioner.provision(fake_gcloud, _cfg())

    assert result.ok
    assert [s.name for s in result.steps] == [name for name, _ in provisioner.PROVISION_STEPS]
    assert len(fake_gcloud.mutating_calls()) == len(EXPECTED_ORDER)
    assert _positional_prefixes(fake_gcloud) == EXPECTED_ORDER

    roles = [
        next(a for a in call if a.startswith("--role="))
        for call in fake_gcloud.mutating_calls()[5:8]
    ]
    assert roles == [
        "--role=roles/artifactregistry.writer",
        "--role=roles/container.developer",
        "--role=roles/container.clusterViewer",
    ]


def test_provision_end_to_end_values(fake_gcloud) -> None:  # noqa: ANN001
    fake_gcloud.project_number = "555000111"

    result = provisioner.provision(fake_gcloud, _cfg())

    assert len(result.steps) == 10
    assert result.secrets is not None
    assert result.secrets.project_id == "demo-123"
    assert result.secrets.workload_identity_provider == (
        "projects/555000111/locations/global/workloadIdentityPools/github-pool/providers/github-provider"
    )
    assert "demo-123" not in result.secrets.workload_identity_provider
    assert result.secrets.service_account.endswith("@demo-123.iam.gserviceaccount.com")

    # 클러스터는 프로젝트 workload pool 에 묶여야 한다.
    cluster_call = fake_gcloud.mutating_calls()[3]
    assert "--workload-pool=demo-123.svc.id.goog" in cluster_call
    assert "--num-nodes=2" in cluster_call
    assert "--machine-type=e2-medium" in cluster_call

    provider_call = fake_gcloud.mutating_calls()[9]
    assert "--attribute-condition=assertion.repository=='alice/widgets'" in provider_call
    assert "--issuer-uri=https://token.actions.githubusercontent.com" in provider_call

    binding_call = fake_gcloud.mutating_calls()[10]
    assert (
        "--member=principalSet://iam.googleapis.com/projects/555000111/locations/global/"
        "workloadIdentityPools/github-pool/attribute.repository/alice/widgets"
    ) in binding_call
    assert "--role=roles/iam.workloadIdentityUser" in binding_call


@pytest.mark.parametrize(
    "fail_on, expected_steps",
    [
        (("config", "set", "project"), 1),
        (("container", "clusters", "create"), 4),
        (("projects", "add-iam-policy-binding"), 6),
        (("iam", "workload-identity-pools", "providers", "create-oidc"), 8),
    ],
)
def test_provision_halts_after_first_failure(fake_gcloud, fail_on, expected_steps) -> None:  # noqa: ANN001
    fake_gcloud.fail_on = fail_on

    result = provisioner.provision(fake_gcloud, _cfg())

    assert not result.ok
    assert len(result.steps) == expected_steps
    assert result.failed_step is result.steps[-1]
    assert all(s.ok for s in result.steps[:-1])
    # 오류 메시지는 가공 없이 그대로 전달된다.
    assert "PERMISSION_DENIED: simulated failure" in (result.failed_step.error or "")
    # 실패한 호출 이후에는 어떤 호출도 하지 않는다.
    last = fake_gcloud.positional_calls()[-1]
    assert last[: len(fail_on)] == fail_on
    assert result.secrets is None


def test_existing_resources_are_not_recreated(fake_gcloud) -> None:  # noqa: ANN001
    fake_gcloud.repositories.add("my-docker-repo")
    fake_gcloud.clusters.add("my-gke-cluster")
    fake_gcloud.pools.add("github-pool")

    result = provisioner.provision(fake_gcloud, _cfg())

    assert result.ok
    created = {c[:3] for c in fake_gcloud.positional_calls() if "create" in c}
    assert ("artifacts", "repositories", "create") not in created
    assert ("container", "clusters", "create") not in created
    assert ("iam", "workload-identity-pools", "create") not in created
    by_name = {s.name: s for s in result.steps}
    assert "이미 존재" in by_name["gke-cluster"].detail


def test_existing_provider_with_other_repository_halts_untouched(fake_gcloud) -> None:  # noqa: ANN001
    fake_gcloud.providers["github-provider"] = "assertion.repository=='bob/other'"

    result = provisioner.provision(fake_gcloud, _cfg())

    assert not result.ok
    assert result.secrets is None
    assert result.failed_step is result.steps[-1]
    assert result.failed_step.name == "wif-provider"
    assert fake_gcloud.providers["github-provider"] == "assertion.repository=='bob/other'"

    error = result.failed_step.error or ""
    assert "불일치" in error
    assert "assertion.repository=='bob/other'" in error
    assert "assertion.repository=='alice/widgets'" in error
    assert "update-oidc github-provider" in error
    assert "create-oidc github-provider" in error

    # provider 를 바꾸거나 바인딩하지 않는다.
    touched = [c[:4] for c in fake_gcloud.positional_calls()]
    assert ("iam", "workload-identity-pools", "providers", "create-oidc") not in touched
    assert ("iam", "workload-identity-pools", "providers", "update-oidc") not in touched
    assert not any(c[:3] == ("iam", "service-accounts", "add-iam-policy-binding") for c in touched)
    assert ("projects", "describe") not in {c[:2] for c in touched}


def test_ci_secrets_step_requires_project_number(fake_gcloud) -> None:  # noqa: ANN001
    ctx = provisioner.ProvisionContext(cfg=_cfg())

    with pytest.raises(ControlPlaneError) as excinfo:
        provisioner._ci_secrets(fake_gcloud, ctx)

    assert "demo-123" in str(excinfo.value)
    assert ctx.secrets is None


def test_plan_commands_cover_every_step_without_remote_calls() -> None:
    plan = provisioner.plan_commands(_cfg(confirmed=False))

    assert [name for name, _ in plan] == [name for name, _ in provisioner.PROVISION_STEPS]
    commands = dict(plan)
    assert len(commands["iam-roles"]) == 3
    assert commands["project"] == ["gcloud config set project demo-123"]
    assert provisioner.PROJECT_NUMBER_PLACEHOLDER in commands["wif-binding"][0]
