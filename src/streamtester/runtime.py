import logging
from concurrent.futures import ThreadPoolExecutor

from rich.logging import RichHandler

_executor: ThreadPoolExecutor | None = None
_max_workers = 16


def configure_executor(max_workers: int) -> None:
    global _max_workers
    _max_workers = max_workers


def get_executor() -> ThreadPoolExecutor:
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=_max_workers, thread_name_prefix="kafka-io")
    return _executor


def shutdown_executor() -> None:
    global _executor
    if _executor is not None:
        # In-flight broker calls are abandoned on stop, don't wait for them here either.
        _executor.shutdown(wait=False, cancel_futures=True)
        _executor = None


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
