from typing import Awaitable, Callable, Optional
import asyncio
import time

from knowledge_interview.domain.errors import ProviderError
from knowledge_interview.infrastructure.observability.logging import interview_logger, metrics


async def call_with_retry(
    operation: str,
    call: Callable[[], Awaitable[str]],
    *,
    timeout_s: float,
    attempts: int = 2,
    backoff_base: float = 0.5,
) -> str:
    """Run a provider call with a per-attempt timeout and exponential backoff.

    Raises ProviderError once every attempt has failed or timed out.
    Cancellation is not retried.
    """
    attempts = max(attempts, 1)
    last_error: Optional[BaseException] = None

    for attempt in range(attempts):
        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(call(), timeout=timeout_s)
        except (asyncio.TimeoutError, TimeoutError, ProviderError) as e:
            last_error = e
            duration_ms = (time.perf_counter() - started) * 1000
            reason = "timeout" if isinstance(e, (asyncio.TimeoutError, TimeoutError)) else str(e)
            interview_logger.log_provider_call(
                operation, attempt + 1, duration_ms=duration_ms, success=False, error=reason
            )
            metrics.record_provider_call(operation, duration_ms, success=False)
            if attempt + 1 < attempts:
                await asyncio.sleep(backoff_base * (2 ** attempt))
            continue

        duration_ms = (time.perf_counter() - started) * 1000
        interview_logger.log_provider_call(operation, attempt + 1, duration_ms=duration_ms)
        metrics.record_provider_call(operation, duration_ms)
        return result

    raise ProviderError(
        f"{operation} failed after {attempts} attempts: {last_error or 'timeout'}",
        {"operation": operation, "attempts": attempts}
    ) from last_error
