"""asyncio 실행 보조 함수.

이미지 리사이즈/인코딩은 CPU-bound라서 이벤트 루프에서 바로 돌리면
같은 루프를 쓰는 다른 이미지 처리 태스크가 전부 멈춘다.
run_blocking()으로 스레드풀에 위임하면 I/O 대기(다운로드, 업로드)와
CPU 작업이 서로 끼어들 수 있다. Pillow는 C 레벨에서 GIL을 놓으므로
스레드풀로도 실제 병렬 처리가 된다.

settle_all()은 하나가 실패해도 나머지 결과를 잃지 않는 gather다.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

from core.config import settings

T = TypeVar("T")

_pool: ThreadPoolExecutor | None = None
# DB 세션 작업 전용 풀. 세션은 스레드 안전하지 않으므로 같은 세션 작업이 겹치지 않게 따로 둔다.
_db_pool: ThreadPoolExecutor | None = None


def _get_pool() -> ThreadPoolExecutor:
    global _pool
    if _pool is None:
        _pool = ThreadPoolExecutor(
            max_workers=settings.CPU_WORKERS, thread_name_prefix="cpu"
        )
    return _pool


def _get_db_pool() -> ThreadPoolExecutor:
    global _db_pool
    if _db_pool is None:
        _db_pool = ThreadPoolExecutor(
            max_workers=settings.DB_WORKERS, thread_name_prefix="db"
        )
    return _db_pool


def shutdown_pool() -> None:
    global _pool, _db_pool
    for pool in (_pool, _db_pool):
        if pool is not None:
            pool.shutdown(wait=True)
    _pool = None
    _db_pool = None


async def run_blocking(func: Callable[..., T], *args: Any) -> T:
    """CPU 작업을 스레드풀에 위임하고 완료를 기다린다."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_get_pool(), func, *args)


async def run_db(func: Callable[..., T], *args: Any) -> T:
    """동기 SQLModel 작업(조회, commit)을 DB 풀에서 실행한다.

    이벤트 루프가 commit을 기다리는 동안 다른 이미지의 I/O가 계속 진행된다.
    func 안에서 세션과 ORM 객체 접근을 끝내고 평범한 값만 돌려주는 것이 원칙.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_get_db_pool(), func, *args)


async def settle_all(
    aws: Iterable[Awaitable[T]], limit: int = 0
) -> list[T | BaseException]:
    """모든 awaitable을 끝까지 기다리고, 결과 또는 예외를 순서대로 반환한다.

    limit > 0 이면 동시에 실행되는 개수를 세마포어로 제한한다.
    첫 실패에서 멈추지 않는다.
    """
    if limit <= 0:
        return await asyncio.gather(*aws, return_exceptions=True)

    semaphore = asyncio.Semaphore(limit)

    async def _bounded(aw: Awaitable[T]) -> T:
        async with semaphore:
            return await aw

    return await asyncio.gather(*(_bounded(aw) for aw in aws), return_exceptions=True)
