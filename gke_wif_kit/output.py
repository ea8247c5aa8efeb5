"""
output
------

[INFO]/[SUCCESS]/[WARNING]/[ERROR] 색상 상태 라인과 CI secret 블록 출력 헬퍼.
색상은 click 이 TTY 여부에 따라 자동으로 제거한다.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

import click

from .gcp_wif import CISecrets


INFO = "INFO"
SUCCESS = "SUCCESS"
WARNING = "WARNING"
ERROR = "ERROR"

_COLORS = {
    INFO: "blue",
    SUCCESS: "green",
    WARNING: "yellow",
    ERROR: "red",
}


def status_prefix(level: str) -> str:
    return click.style(f"[{level}]", fg=_COLORS[level])


def echo_status(level: str, message: str, *, err: bool = False) -> None:
    click.echo(f"{status_prefix(level)} {message}", err=err)


def info(message: str) -> None:
    echo_status(INFO, message)


def success(message: str) -> None:
    echo_status(SUCCESS, message)


def warning(message: str) -> None:
    echo_status(WARNING, message)


def error(message: str) -> None:
    echo_status(ERROR, message, err=True)


def echo_block(lines: Optional[Iterable[str]]) -> None:
    """상태 라인 아래에 붙는 태그 없는 상세/조치 라인."""
    for line in lines or []:
        click.echo(line)


def secrets_lines(secrets: CISecrets) -> List[str]:
    lines: List[str] = []
    for name, value in secrets.items():
        lines.append(f"{name}:")
        lines.append(value)
        lines.append("")
    return lines
