import sys
from typing import Optional, Sequence

import click

from .config import load_env_files, ProvisionConfig
from .errors import StageError
from .logging_utils import setup_logging, get_logger
from .orchestrator import provision


logger = get_logger(__name__)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "-p",
    "--project-id",
    "project_id",
    type=str,
    default=None,
    metavar="PROJECT_ID",
    help="배포가 속한 GCP 프로젝트 ID (필수)",
)
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="작업 디렉토리 (.env, roles.txt, infra/ 위치. 기본: 현재 디렉토리)",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다. (-v 가 많을수록 더 자세한 로그)",
)
def provision_command(project_id: Optional[str], chdir: str, verbose: int) -> None:
    """Solutions Console 배포를 찾아 IAM/tfvars/스테이징 버킷을 준비하고 다시 apply 한다."""
    if not project_id or not project_id.strip():
        raise click.UsageError(
            "프로젝트 ID 를 읽지 못했습니다. -p PROJECT_ID 가 필요합니다.",
            ctx=click.get_current_context(),
        )

    setup_logging(verbose)

    try:
        loaded = load_env_files(chdir)
        logger.debug("읽은 env 파일: %s", loaded or "(없음)")
        cfg = ProvisionConfig.from_env(project_id, base_dir=chdir)
    except ValueError as e:
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)
    logger.debug("Config loaded: %s", cfg)

    try:
        result = provision(cfg)
    except StageError as e:
        logger.debug("단계 실패: %s", e.stage, exc_info=True)
        click.echo(f"[ERROR] stage={e.stage} (exit={e.exit_code}): {e}", err=True)
        sys.exit(e.exit_code)

    click.echo(result.format_summary())
    click.echo("Deployment completed successfully!")


def main(argv: Optional[Sequence[str]] = None) -> None:
    """
    콘솔 엔트리포인트.

    click 기본 동작(사용법 오류 시 exit 2) 대신, 잘못된 옵션이나 -p 누락은
    사용법을 출력하고 exit 1 로 끝낸다. 이 경우 외부 호출은 일어나지 않는다.
    """
    try:
        provision_command.main(
            args=list(argv) if argv is not None else None,
            prog_name="im-provision",
            standalone_mode=False,
        )
    except click.UsageError as e:
        if e.ctx is not None:
            click.echo(e.ctx.get_usage(), err=True)
        else:
            click.echo("Usage: im-provision -p PROJECT_ID", err=True)
        click.echo(f"[ERROR] {e.format_message()}", err=True)
        sys.exit(1)
    except click.ClickException as e:
        e.show()
        sys.exit(1)
    except click.Abort:
        click.echo("중단되었습니다.", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
