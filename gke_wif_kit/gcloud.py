"""
gcloud
------

gcloud CLI 호출을 한 곳으로 모으는 얇은 러너.
모든 gcp_* 모듈은 이 객체를 인자로 받아 제어 평면(control plane)에 접근하므로,
테스트에서는 하위 클래스로 교체해 실제 호출 없이 동작을 검증할 수 있다.
"""

from __future__ import annotations

import shlex
from typing import Optional, Sequence

from .logging_utils import get_logger
from .subprocess_utils import ControlPlaneError, RunResult, run_command


logger = get_logger(__name__)


# 큰따옴표 안에서도 셸이 해석하는 문자
_DOUBLE_QUOTE_UNSAFE = set('"$`\\!')


def _quote(arg: str) -> str:
    quoted = shlex.quote(arg)
    if quoted == arg or not arg.startswith("--") or "=" not in arg:
        return quoted
    flag, value = arg.split("=", 1)
    if _DOUBLE_QUOTE_UNSAFE & set(value) or shlex.quote(flag) != flag:
        return quoted
    return f'{flag}="{value}"'


def command_line(args: Sequence[str]) -> str:
    """
    복사-붙여넣기 가능한 gcloud 명령 문자열.

    --flag=value 의 value 에 공백이나 작은따옴표가 있으면 --flag="value" 로 감싼다.
    """
    return " ".join(["gcloud", *(_quote(a) for a in args)])


class Gcloud:
    def __init__(self, *, timeout: float = 900.0, show_progress: Optional[bool] = None) -> None:
        self.timeout = timeout
        self.show_progress = show_progress

    def run(
        self,
        args: Sequence[str],
        *,
        timeout: Optional[float] = None,
        spinner_message: Optional[str] = None,
    ) -> RunResult:
        # 캡처 모드에서는 프롬프트에 응답할 수 없다.
        cmd = ["gcloud", *args]
        if "--quiet" not in cmd:
            cmd.append("--quiet")
        return run_command(
            cmd,
            timeout=timeout if timeout is not None else self.timeout,
            spinner_message=spinner_message,
            show_progress=self.show_progress,
        )

    def value(self, args: Sequence[str]) -> str:
        """stdout 을 앞뒤 공백 제거해서 반환 (--format=value(...) 조회용)."""
        return self.run(args).stdout.strip()

    def exists(self, args: Sequence[str]) -> bool:
        """
        describe 계열 명령이 성공하면 True.

        NOT_FOUND 와 권한 부족 등을 구분하지 않는다. 실패 원인은 DEBUG 로만 남긴다.
        """
        try:
            self.run(args)
            return True
        except ControlPlaneError as e:
            logger.debug("리소스 조회 실패 (없음으로 간주): %s", e)
            return False
