from __future__ import annotations

import os
import shutil
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from textwrap import shorten
from typing import Iterable, Sequence

from .logging_utils import get_logger


logger = get_logger(__name__)


_BRAILLE_FRAMES = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]
_ASCII_FRAMES = ["|", "/", "-", "\\"]


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str


class ControlPlaneError(RuntimeError):
    """
    gcloud 호출 실패.

    stderr 는 가공하지 않고 그대로 보관하여 운영자에게 원문을 보여준다.
    """

    def __init__(self, cmd: Sequence[str], message: str, *, returncode: int | None = None, stderr: str = "") -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


def missing_tools(names: Iterable[str]) -> list[str]:
    """PATH 에서 찾을 수 없는 실행 파일 이름 목록."""
    return [name for name in names if shutil.which(name) is None]


def _is_tty(stream) -> bool:  # noqa: ANN001
    try:
        return bool(getattr(stream, "isatty") and stream.isatty())
    except Exception:  # noqa: BLE001
        return False


def _show_progress_from_env() -> bool | None:
    raw = os.getenv("CLI_SHOW_PROGRESS")
    if raw is None:
        return None
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _format_elapsed(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:0.1f}s"
    minutes = int(seconds // 60)
    sec = int(seconds % 60)
    return f"{minutes}m{sec:02d}s"


class _IdleProgressIndicator:
    """
    명령이 idle_seconds 이상 끝나지 않을 때만 stderr 에 스피너 + 경과시간을 그린다.
    GKE 클러스터 생성처럼 수 분 걸리는 호출이 '멈춘 것처럼' 보이지 않게 하기 위함.
    """

    def __init__(
        self,
        message: str,
        *,
        stream=None,  # noqa: ANN001
        style: str = "braille",
        interval: float = 0.12,
        idle_seconds: float = 2.0,
    ) -> None:
        self._message = message
        self._stream = stream if stream is not None else sys.stderr
        self._frames = _ASCII_FRAMES if style.strip().lower() == "ascii" else _BRAILLE_FRAMES
        self._interval = max(float(interval), 0.02)
        self._idle_seconds = max(float(idle_seconds), 0.0)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_len = 0

    def _render(self, idx: int, elapsed: float) -> None:
        frame = self._frames[idx % len(self._frames)]
        text = f"{frame} {self._message}  {_format_elapsed(elapsed)}"
        self._last_len = max(self._last_len, len(text))
        self._stream.write("\r" + text)
        self._stream.flush()

    def start(self) -> None:
        if self._thread is not None:
            return
        started = time.monotonic()

        def _run() -> None:
            # idle 구간이 지나기 전에 끝나면 아무것도 그리지 않는다.
            if self._stop.wait(self._idle_seconds):
                return
            idx = 0
            while not self._stop.is_set():
                self._render(idx, time.monotonic() - started)
                idx += 1
                self._stop.wait(self._interval)

        self._thread = threading.Thread(target=_run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
        if self._last_len > 0:
            self._stream.write("\r" + (" " * self._last_len) + "\r")
            self._stream.flush()


def run_command(
    cmd: Sequence[str],
    *,
    timeout: float | None = 900.0,
    spinner_message: str | None = None,
    show_progress: bool | None = None,
    progress_idle_seconds: float = 2.0,
    progress_style: str = "braille",
    progress_interval: float = 0.12,
) -> RunResult:
    """
    subprocess 실행 공통 유틸.

    stdout/stderr 를 캡처하고, 실패(exit != 0, timeout, 실행 파일 없음)는
    모두 ControlPlaneError 로 올린다. 재시도는 하지 않는다.
    """
    logger.info("명령 실행: %s", " ".join(cmd))

    # 우선순위: 호출 인자 > env(CLI_SHOW_PROGRESS) > 기본값(True)
    effective_show = show_progress
    if effective_show is None:
        env_show = _show_progress_from_env()
        effective_show = True if env_show is None else env_show

    indicator: _IdleProgressIndicator | None = None
    if effective_show and _is_tty(sys.stderr):
        indicator = _IdleProgressIndicator(
            spinner_message or shorten(" ".join(cmd), width=72, placeholder="…"),
            stream=sys.stderr,
            style=progress_style,
            interval=progress_interval,
            idle_seconds=progress_idle_seconds,
        )
        indicator.start()

    try:
        result = subprocess.run(  # noqa: S603
            list(cmd),
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        if result.stdout:
            logger.debug("명령 stdout: %s", shorten(result.stdout.strip(), width=2000))
        if result.stderr:
            logger.debug("명령 stderr: %s", shorten(result.stderr.strip(), width=2000))
        return RunResult(returncode=result.returncode, stdout=result.stdout or "", stderr=result.stderr or "")
    except FileNotFoundError as e:
        raise ControlPlaneError(
            cmd,
            f"필요한 명령을 찾을 수 없습니다: {cmd[0]} (gcloud 가 설치되어 있는지 확인하세요)",
        ) from e
    except subprocess.TimeoutExpired as e:
        raise ControlPlaneError(
            cmd,
            f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}",
        ) from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        stdout = (e.stdout or "").strip()
        detail = ""
        if stderr:
            detail = "\nstderr:\n" + stderr
        elif stdout:
            detail = "\nstdout:\n" + stdout
        raise ControlPlaneError(
            cmd,
            f"명령 실행 실패: {' '.join(cmd)} (exit={e.returncode}){detail}",
            returncode=e.returncode,
            stderr=stderr,
        ) from e
    finally:
        if indicator is not None:
            indicator.stop()
