"""단계별 처리 시간 측정 유틸리티."""

import time
from contextlib import contextmanager

from loguru import logger


@contextmanager
def timer(label: str = "", warn_after: float | None = None):
    """컨텍스트 매니저: 블록 실행 시간을 측정한다.

    블록 안에 await가 있어도 된다 (벽시계 기준이라 다른 태스크 대기 시간도 포함).
    warn_after(초)를 넘기면 WARNING, 아니면 DEBUG로 남긴다.

    사용법:
        with timer(f"{image_id} upload", warn_after=10) as t:
            await ...
        t.elapsed
    """
    t = _Elapsed()
    start = time.perf_counter()
    try:
        yield t
    finally:
        t.elapsed = time.perf_counter() - start
        if label:
            if warn_after is not None and t.elapsed > warn_after:
                logger.warning(f"[{label}] {t.elapsed:.3f}s (over {warn_after:.0f}s)")
            else:
                logger.debug(f"[{label}] {t.elapsed:.3f}s")


class _Elapsed:
    elapsed: float = 0.0
