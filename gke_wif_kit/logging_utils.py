import logging
import sys


def setup_logging(verbosity: int = 0) -> None:
    # 상태 리포트(stdout)와 섞이지 않도록 로그는 stderr 로 보낸다.
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stderr,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
