import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from blog_api.core.exceptions import ClassifiedError, RequestCancelledError
from blog_api.execution.classifier import classify_error
from blog_api.models.request import RequestFn, RetryPolicy

logger = logging.getLogger(__name__)

OnRetry = Callable[[ClassifiedError, int], Any]


def is_retryable(error: BaseException, policy: RetryPolicy) -> bool:
    """Повторяем только классифицированные временные сбои вне черного списка статусов."""
    if not isinstance(error, ClassifiedError):
        return False
    if not error.retryable:
        return False
    return error.status not in policy.non_retryable_statuses


class RetryController:
    """
    Единственная точка Retry в системе.
    Задержка перед k-й повторной попыткой: base_delay_ms * 2^(k-1), с потолком max_delay_ms.
    """

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        # sleep внедряется ради тестов (проверка задержек без реального ожидания)
        self._sleep = sleep

    def _build_retrier(self, policy: RetryPolicy, on_retry: Optional[OnRetry]) -> AsyncRetrying:
        max_attempts = policy.max_attempts if policy.enabled else 1
        log_before_sleep = before_sleep_log(logger, logging.WARNING)

        def _before_sleep(retry_state: RetryCallState) -> None:
            log_before_sleep(retry_state)
            if on_retry is not None and retry_state.outcome is not None:
                on_retry(retry_state.outcome.exception(), retry_state.attempt_number)

        return AsyncRetrying(
            retry=retry_if_exception(lambda e: is_retryable(e, policy)),
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(
                multiplier=policy.base_delay_ms / 1000.0,
                exp_base=2,
                min=0,
                max=policy.max_delay_ms / 1000.0,
            ),
            sleep=self._sleep,
            before_sleep=_before_sleep,
            reraise=True,
        )

    async def execute(
        self,
        request_fn: RequestFn,
        policy: RetryPolicy,
        on_retry: Optional[OnRetry] = None,
    ) -> Any:
        """
        Выполняет request_fn с политикой Resilience.
        Наружу уходит только ClassifiedError (или RequestCancelledError).
        """
        retrier = self._build_retrier(policy, on_retry)

        async for attempt in retrier:
            with attempt:
                try:
                    return await request_fn()
                except RequestCancelledError:
                    # Отмена - решение вызывающего, не сбой
                    raise
                except Exception as e:
                    # Классификация
                    classified = classify_error(e)
                    if classified is e:
                        raise
                    raise classified from e
