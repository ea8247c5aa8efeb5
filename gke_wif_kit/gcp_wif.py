"""
gcp_wif
-------

Workload Identity Federation 구성을 담당하는 모듈.

- global 위치의 identity pool
- GitHub Actions OIDC 발급자를 신뢰하는 provider (특정 저장소만 허용하는 attribute condition)
- "이 pool + 이 저장소" principalSet 에 서비스 계정 가장(workloadIdentityUser) 권한 부여

이렇게 하면 CI 에 장기 서비스 계정 키를 두지 않고도 배포할 수 있다.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .config import ResourceNames, SetupConfig, service_account_email
from .gcloud import Gcloud, command_line
from .logging_utils import get_logger
from .subprocess_utils import ControlPlaneError


logger = get_logger(__name__)


POOL_LOCATION = "global"
POOL_DESCRIPTION = "Pool for GitHub Actions"
ISSUER_URI = "https://token.actions.githubusercontent.com"
ATTRIBUTE_MAPPING = (
    "google.subject=assertion.sub,"
    "attribute.repository=assertion.repository,"
    "attribute.actor=assertion.actor"
)
WORKLOAD_IDENTITY_USER_ROLE = "roles/iam.workloadIdentityUser"


def attribute_condition(repository: str) -> str:
    return f"assertion.repository=='{repository}'"


def pool_resource_name(project_number: str, names: ResourceNames) -> str:
    return f"projects/{project_number}/locations/{POOL_LOCATION}/workloadIdentityPools/{names.pool}"


def provider_resource_name(project_number: str, names: ResourceNames) -> str:
    """GitHub secret GCP_WORKLOAD_IDENTITY_PROVIDER 에 들어가는 값."""
    return f"{pool_resource_name(project_number, names)}/providers/{names.provider}"


def principal_set_prefix(project_number: str, names: ResourceNames) -> str:
    return f"principalSet://iam.googleapis.com/{pool_resource_name(project_number, names)}"


def principal_set_member(project_number: str, names: ResourceNames, repository: str) -> str:
    # 프로젝트 ID 가 아니라 프로젝트 번호여야 한다.
    return f"{principal_set_prefix(project_number, names)}/attribute.repository/{repository}"


def describe_pool_args(names: ResourceNames, project_id: str) -> List[str]:
    return [
        "iam",
        "workload-identity-pools",
        "describe",
        names.pool,
        f"--location={POOL_LOCATION}",
        f"--project={project_id}",
    ]


def create_pool_args(names: ResourceNames, project_id: str) -> List[str]:
    return [
        "iam",
        "workload-identity-pools",
        "create",
        names.pool,
        f"--location={POOL_LOCATION}",
        f"--description={POOL_DESCRIPTION}",
        f"--project={project_id}",
    ]


def describe_provider_args(names: ResourceNames, project_id: str, *, fmt: str = "value(attributeCondition)") -> List[str]:
    return [
        "iam",
        "workload-identity-pools",
        "providers",
        "describe",
        names.provider,
        f"--location={POOL_LOCATION}",
        f"--workload-identity-pool={names.pool}",
        f"--project={project_id}",
        f"--format={fmt}",
    ]


def create_provider_args(names: ResourceNames, project_id: str, repository: str) -> List[str]:
    return [
        "iam",
        "workload-identity-pools",
        "providers",
        "create-oidc",
        names.provider,
        f"--location={POOL_LOCATION}",
        f"--workload-identity-pool={names.pool}",
        f"--issuer-uri={ISSUER_URI}",
        f"--attribute-mapping={ATTRIBUTE_MAPPING}",
        f"--attribute-condition={attribute_condition(repository)}",
        f"--project={project_id}",
    ]


def update_provider_condition_args(names: ResourceNames, project_id: str, repository: str) -> List[str]:
    return [
        "iam",
        "workload-identity-pools",
        "providers",
        "update-oidc",
        names.provider,
        f"--location={POOL_LOCATION}",
        f"--workload-identity-pool={names.pool}",
        f"--attribute-condition={attribute_condition(repository)}",
        f"--project={project_id}",
    ]


def bind_federation_args(email: str, member: str, project_id: str) -> List[str]:
    return [
        "iam",
        "service-accounts",
        "add-iam-policy-binding",
        email,
        f"--role={WORKLOAD_IDENTITY_USER_ROLE}",
        f"--member={member}",
        f"--project={project_id}",
    ]


def ensure_pool(gcloud: Gcloud, cfg: SetupConfig) -> str:
    pool = cfg.names.pool
    logger.info("Workload identity pool 확인: %s", pool)

    if gcloud.exists(describe_pool_args(cfg.names, cfg.project_id)):
        logger.info("기존 pool 을 사용합니다: %s", pool)
        return f"pool 이미 존재함 ({pool})"

    gcloud.run(create_pool_args(cfg.names, cfg.project_id))
    logger.info("Workload identity pool 을 생성했습니다: %s", pool)
    return f"pool 생성됨 ({pool})"


def ensure_provider(gcloud: Gcloud, cfg: SetupConfig) -> str:
    """
    OIDC provider 가 없으면 생성한다.

    이미 있으면 수정하지 않는다. attribute condition 이 요청한 저장소와 다르면
    이 저장소의 federation 은 항상 거부되므로 ControlPlaneError 로 단계를 실패시키고,
    운영자가 직접 실행할 update-oidc / create-oidc 명령을 메시지에 담는다.
    """
    provider = cfg.names.provider
    expected = attribute_condition(cfg.repository)
    logger.info("Workload identity provider 확인: %s", provider)

    describe_args = describe_provider_args(cfg.names, cfg.project_id)
    try:
        current = gcloud.value(describe_args)
    except ControlPlaneError as e:
        logger.debug("provider 조회 실패 (없음으로 간주): %s", e)
    else:
        if current != expected:
            logger.warning(
                "기존 provider 의 attribute condition 이 다릅니다: 현재=%r 기대=%r",
                current,
                expected,
            )
            raise ControlPlaneError(
                ["gcloud", *describe_args],
                "\n".join(
                    [
                        f"기존 provider '{provider}' 의 attribute condition 이 일치하지 않습니다 (불일치).",
                        f"  현재: {current}",
                        f"  기대: {expected}",
                        "기존 provider 를 이 저장소용으로 바꾸려면:",
                        f"  {command_line(update_provider_condition_args(cfg.names, cfg.project_id, cfg.repository))}",
                        "또는 WIF_PROVIDER_ID 에 새 provider 이름을 지정해 다시 실행하세요. 생성 명령 형식 (이름만 바꿔서):",
                        f"  {command_line(create_provider_args(cfg.names, cfg.project_id, cfg.repository))}",
                    ]
                ),
            )
        return f"provider 이미 존재함 ({provider})"

    gcloud.run(create_provider_args(cfg.names, cfg.project_id, cfg.repository))
    logger.info("Workload identity provider 를 생성했습니다: %s", provider)
    return f"provider 생성됨 ({provider}, {expected})"


def ensure_federation_binding(gcloud: Gcloud, cfg: SetupConfig, project_number: str) -> str:
    member = principal_set_member(project_number, cfg.names, cfg.repository)
    email = cfg.service_account_email
    logger.info("Workload identity 바인딩: %s -> %s", member, email)
    gcloud.run(bind_federation_args(email, member, cfg.project_id))
    return f"바인딩됨 ({member})"


def check_pool(gcloud: Gcloud, names: ResourceNames, project_id: str) -> bool:
    return gcloud.exists(describe_pool_args(names, project_id))


def describe_provider(gcloud: Gcloud, names: ResourceNames, project_id: str) -> Optional[str]:
    """provider 의 condition/mapping/oidc 설정(YAML). 없으면 None."""
    try:
        return gcloud.value(
            describe_provider_args(
                names,
                project_id,
                fmt="yaml(attributeCondition,attributeMapping,oidc)",
            )
        )
    except ControlPlaneError as e:
        logger.debug("provider 조회 실패 (없음으로 간주): %s", e)
        return None


def check_federation_binding(gcloud: Gcloud, email: str, project_id: str, project_number: str, names: ResourceNames) -> bool:
    """서비스 계정 IAM 정책에 이 pool 의 principalSet 멤버가 있는지."""
    try:
        members = gcloud.value(
            [
                "iam",
                "service-accounts",
                "get-iam-policy",
                email,
                f"--project={project_id}",
                "--format=value(bindings[].members)",
            ]
        )
    except ControlPlaneError as e:
        logger.debug("서비스 계정 IAM 정책 조회 실패: %s", e)
        return False
    return principal_set_prefix(project_number, names) + "/" in members


@dataclass(frozen=True)
class CISecrets:
    """GitHub Actions 가 정적 키 없이 인증하는 데 필요한 세 값."""

    project_id: str
    workload_identity_provider: str
    service_account: str

    def items(self) -> List[tuple[str, str]]:
        return [
            ("GCP_PROJECT_ID", self.project_id),
            ("GCP_WORKLOAD_IDENTITY_PROVIDER", self.workload_identity_provider),
            ("GCP_SERVICE_ACCOUNT", self.service_account),
        ]


def ci_secrets(project_id: str, project_number: str, names: ResourceNames) -> CISecrets:
    return CISecrets(
        project_id=project_id,
        workload_identity_provider=provider_resource_name(project_number, names),
        service_account=service_account_email(names.service_account, project_id),
    )
