import sys
from dataclasses import replace
from typing import Optional

import click

from . import output
from .config import (
    ResourceNames,
    SetupConfig,
    default_region,
    default_zone,
    load_env_files,
    validate_repository,
)
from .gcloud import Gcloud
from .gcp_artifact_registry import image_registry
from .logging_utils import setup_logging, get_logger
from .provisioner import STEP_TITLES, StepResult, plan_commands, provision
from .subprocess_utils import missing_tools
from .verifier import NoActiveProjectError, ReportLine, verify


logger = get_logger(__name__)


REQUIRED_TOOLS = ["gcloud", "kubectl"]


@click.group()
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help=".env / .env.gke-wif 를 읽을 디렉토리 (기본: 현재 디렉토리)",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 올립니다. (-v: INFO, -vv: DEBUG)",
)
@click.pass_context
def main(ctx: click.Context, chdir: str, verbose: int) -> None:
    """GitHub Actions → GKE 배포용 GCP Workload Identity Federation 준비/점검 CLI"""
    setup_logging(verbose)
    load_env_files(chdir)
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir
    ctx.obj["names"] = ResourceNames.from_env()


def _ask(text: str, value: Optional[str], default: str = "") -> str:
    if value is not None:
        return value
    # default="" 이면 빈 입력도 그대로 받아서 이후 검증에서 거절한다.
    return click.prompt(text, default=default, show_default=bool(default))


def _build_config(ctx: click.Context, repository: Optional[str], project: Optional[str],
                  region: Optional[str], zone: Optional[str]) -> SetupConfig:
    repo = _ask("GitHub 저장소를 입력하세요 (형식: username/repo-name)", repository)
    try:
        validate_repository(repo)
    except ValueError as e:
        output.error(str(e))
        sys.exit(1)

    project_id = _ask("GCP 프로젝트 ID 를 입력하세요", project)
    region_value = _ask("리전을 입력하세요", region, default_region())
    zone_value = _ask("존을 입력하세요", zone, default_zone())

    try:
        return SetupConfig.build(
            repository=repo,
            project_id=project_id,
            region=region_value,
            zone=zone_value,
            names=ctx.obj["names"],
        )
    except ValueError as e:
        output.error(str(e))
        sys.exit(1)


def _echo_step(step: StepResult) -> None:
    title = STEP_TITLES.get(step.name, step.name)
    if step.ok:
        output.success(f"{title}: {step.detail}")
    else:
        output.error(f"{title} 실패")
        click.echo(step.error, err=True)


@main.command()
@click.option("--repository", "repository", default=None, help="GitHub 저장소 (username/repo-name)")
@click.option("--project", "project", default=None, help="GCP 프로젝트 ID")
@click.option("--region", "region", default=None, help="리전 (기본: us-central1 또는 GCP_REGION)")
@click.option("--zone", "zone", default=None, help="존 (기본: us-central1-a 또는 GCP_ZONE)")
@click.option("-y", "--yes", "assume_yes", is_flag=True, help="비용 발생 확인 프롬프트를 건너뜁니다.")
@click.pass_context
def setup(ctx: click.Context, repository: Optional[str], project: Optional[str],
          region: Optional[str], zone: Optional[str], assume_yes: bool) -> None:
    """리소스를 순서대로 생성하고 GitHub secret 값을 출력"""
    click.echo("===================================")
    click.echo("GCP CI/CD Pipeline Setup")
    click.echo("===================================")

    output.info("필수 도구 확인 중...")
    missing = missing_tools(REQUIRED_TOOLS)
    if missing:
        for tool in missing:
            output.error(f"{tool} 이(가) 설치되어 있지 않습니다. 먼저 설치하세요.")
        sys.exit(1)
    output.success("필수 도구 확인 완료")

    cfg = _build_config(ctx, repository, project, region, zone)

    output.warning("이 명령은 비용이 발생할 수 있는 GCP 리소스를 생성합니다.")
    confirmed = assume_yes or click.confirm("계속 진행하시겠습니까?", default=False)
    if not confirmed:
        output.info("설정이 취소되었습니다.")
        sys.exit(0)
    cfg = replace(cfg, confirmed=True)

    result = provision(Gcloud(), cfg, on_step=_echo_step)
    if not result.ok or result.secrets is None:
        failed = result.failed_step
        output.error(f"단계 '{failed.name if failed else '?'}' 에서 중단되었습니다. 원인을 해결한 뒤 다시 실행하세요.")
        sys.exit(1)

    output.success("설정 완료! GitHub 저장소에 아래 secret 을 추가하세요:")
    click.echo(f"Repository: https://github.com/{cfg.repository}/settings/secrets/actions")
    click.echo("")
    output.echo_block(output.secrets_lines(result.secrets))
    output.warning("잊지 마세요:")
    click.echo(f"1. 워크플로 파일의 레지스트리 경로를 업데이트하세요: {image_registry(cfg)}")
    click.echo("2. 초기 Kubernetes 리소스를 배포하세요: kubectl apply -f k8s-deployment.yaml")
    click.echo("3. k8s-deployment.yaml 의 이미지 참조를 프로젝트 ID 에 맞게 수정하세요.")


def _repository_prompt() -> str:
    def _convert(value: str) -> str:
        try:
            return validate_repository(value)
        except ValueError as e:
            raise click.BadParameter(str(e)) from e

    output.info("조치 명령을 만들기 위해 GitHub 저장소 이름이 필요합니다.")
    return click.prompt("GitHub 저장소 (username/repo-name)", value_proc=_convert)


def _echo_line(line: ReportLine) -> None:
    if line.level is None:
        click.echo(line.text)
    else:
        output.echo_status(line.level, line.text)


@main.command(name="verify")
@click.option(
    "--repository",
    "repository",
    default=None,
    help="조치 명령에 사용할 GitHub 저장소. 지정하면 프롬프트를 띄우지 않습니다.",
)
@click.pass_context
def verify_cmd(ctx: click.Context, repository: Optional[str]) -> None:
    """
    현재 활성 프로젝트의 설정 상태를 점검한다.
    (리소스 생성/변경은 하지 않으며, 점검 결과와 무관하게 exit 0)
    """
    if repository is not None:
        try:
            repository = validate_repository(repository)
        except ValueError as e:
            output.error(str(e))
            sys.exit(1)

    try:
        report = verify(
            Gcloud(),
            ctx.obj["names"],
            _repository_prompt,
            repository=repository,
            on_line=_echo_line,
        )
    except NoActiveProjectError as e:
        output.error(str(e))
        sys.exit(1)

    if report.secrets is not None:
        click.echo("")
        click.echo("=== 아래 값을 GitHub secrets 에 복사하세요 ===")
        click.echo("")
        output.echo_block(output.secrets_lines(report.secrets))
        click.echo("=============================================")

    output.info("점검 완료!")
    if report.has_issues:
        output.warning("위 항목 중 오류가 있다면 GitHub Actions 워크플로를 실행하기 전에 먼저 해결하세요.")


@main.command()
@click.option("--repository", "repository", required=True, help="GitHub 저장소 (username/repo-name)")
@click.option("--project", "project", required=True, help="GCP 프로젝트 ID")
@click.option("--region", "region", default=None, help="리전 (기본: us-central1 또는 GCP_REGION)")
@click.option("--zone", "zone", default=None, help="존 (기본: us-central1-a 또는 GCP_ZONE)")
@click.pass_context
def plan(ctx: click.Context, repository: str, project: str,
         region: Optional[str], zone: Optional[str]) -> None:
    """setup 이 실행할 단계와 gcloud 명령을 출력 (원격 호출 없음)"""
    try:
        cfg = SetupConfig.build(
            repository=repository,
            project_id=project,
            region=region or default_region(),
            zone=zone or default_zone(),
            names=ctx.obj["names"],
        )
    except ValueError as e:
        output.error(str(e))
        sys.exit(1)

    click.echo("# Setup plan")
    click.echo(f"- repository: {cfg.repository}")
    click.echo(f"- project: {cfg.project_id}")
    click.echo(f"- region: {cfg.region}")
    click.echo(f"- zone: {cfg.zone}")
    click.echo("")

    for idx, (name, commands) in enumerate(plan_commands(cfg), start=1):
        click.echo(f"## {idx}. {STEP_TITLES[name]}")
        if not commands:
            click.echo("- (원격 호출 없음)")
        for cmd in commands:
            click.echo(f"- {cmd}")
        click.echo("")

    click.echo("create 계열 명령은 리소스가 이미 존재하면 건너뜁니다.")
