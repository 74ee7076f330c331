"""Bounded calls to external collaborators (geocoder, payment gateway).

Each call runs on a small shared worker pool and is abandoned after the
configured timeout. A timeout or any adapter exception becomes
ServiceUnavailable, which callers raise before touching a repository so
nothing is persisted for the failed command.
"""

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout

import structlog

from delivery import settings
from delivery.errors import ServiceUnavailable

logger = structlog.get_logger(__name__)

_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="external-call")


def call_with_timeout(service: str, fn, *args, timeout: float | None = None, **kwargs):
    timeout = settings.external_call_timeout_seconds() if timeout is None else timeout
    future = _executor.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        future.cancel()
        logger.warning("External call timed out", service=service, timeout=timeout)
        raise ServiceUnavailable(service, f"no answer within {timeout}s") from None
    except ServiceUnavailable:
        raise
    except Exception as exc:
        logger.warning("External call failed", service=service, error=str(exc))
        raise ServiceUnavailable(service, str(exc)) from exc
