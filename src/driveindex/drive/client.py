"""
Resilient HTTP Fetcher

Outbound calls to the storage API go through ``ResilientFetcher``:

    2xx / 404            -> returned as is
    401                  -> drop cached token, fetch a new one, retry at once
    429 / 5xx            -> exponential backoff (base_delay * 2**attempt), retry
    other 4xx            -> returned as is
    httpx.TransportError -> same backoff; re-raised after the last attempt

Every branch that retries spends one attempt of the budget. When the budget is
spent on retryable responses the caller gets RetryExhaustedError. Errors raised
while refreshing the token are not retried and propagate unchanged.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
)

from driveindex.core.config.constants import HEADER_AUTHORIZATION, MAX_RETRIES, RETRY_BASE_DELAY, Stage
from driveindex.core.exceptions import RetryExhaustedError
from driveindex.core.logging.logger import get_logger, log_stage
from driveindex.drive.auth import TokenManager

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


def is_retryable_response(response: httpx.Response) -> bool:
    """401, 429 and any 5xx are worth another attempt."""
    status = response.status_code
    return status == 401 or status == 429 or status >= 500


def backoff_wait(base_delay: float) -> Callable[[RetryCallState], float]:
    """
    Build the wait strategy.

    Zero after a 401 (the token was refreshed, nothing to wait for);
    otherwise ``base_delay * 2**n`` where n is the 0-based attempt index.
    """

    def _wait(retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is not None and not outcome.failed and outcome.result().status_code == 401:
            return 0.0
        return base_delay * 2 ** (retry_state.attempt_number - 1)

    return _wait


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    if outcome is not None and outcome.failed:
        reason = type(outcome.exception()).__name__
    else:
        reason = outcome.result().status_code if outcome is not None else None

    log_stage(
        logger,
        Stage.FETCH_RETRY,
        "Retrying upstream request",
        level="warning",
        attempt=retry_state.attempt_number,
        reason=reason,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
    )


class ResilientFetcher:
    """
    HTTP calls with token refresh and backoff.

    Usage:
        fetcher = ResilientFetcher(http_client, token_manager)
        response = await fetcher.fetch_with_retry(
            "GET",
            f"{api_url}/files",
            headers={"Authorization": f"Bearer {token}"},
            params={"q": "..."},
        )

    Args:
        http_client: Shared httpx client
        token_manager: Used to refresh the bearer token on 401
        max_retries: Default attempt budget (first attempt included)
        base_delay: Default backoff base in seconds
        sleep: Awaitable sleep, injectable for tests
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_manager: TokenManager,
        max_retries: int = MAX_RETRIES,
        base_delay: float = RETRY_BASE_DELAY,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self._http = http_client
        self._tokens = token_manager
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._sleep = sleep

    async def fetch_with_retry(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        retries: int | None = None,
        base_delay: float | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send a request, retrying per the policy above.

        Args:
            method: HTTP method
            url: Absolute URL
            headers: Request headers; Authorization is replaced after a refresh
            retries: Attempt budget (default: instance default)
            base_delay: Backoff base in seconds (default: instance default)
            **kwargs: Passed through to ``httpx.AsyncClient.request``

        Returns:
            The final response (2xx, 404 or a non-retryable 4xx)

        Raises:
            RetryExhaustedError: Budget spent on 401 / 429 / 5xx responses
            httpx.TransportError: Network failure on the last attempt
            AuthenticationError: Token refresh failed
        """
        attempts = retries if retries is not None else self._max_retries
        delay = base_delay if base_delay is not None else self._base_delay
        request_headers = dict(headers or {})

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=backoff_wait(delay),
            retry=retry_if_exception_type(httpx.TransportError) | retry_if_result(is_retryable_response),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._http.request(method, url, headers=request_headers, **kwargs)
                    log_stage(
                        logger,
                        Stage.FETCH_REQUEST,
                        "Upstream response",
                        level="debug",
                        method=method,
                        status_code=response.status_code,
                        attempt=attempt.retry_state.attempt_number,
                    )
                    # no refresh when no attempt is left to use the new token
                    if response.status_code == 401 and attempt.retry_state.attempt_number < attempts:
                        await self._tokens.invalidate_access_token()
                        token = await self._tokens.get_access_token()
                        request_headers[HEADER_AUTHORIZATION] = f"Bearer {token}"
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(response)
        except RetryError as e:
            last_status = e.last_attempt.result().status_code
            log_stage(
                logger,
                Stage.FETCH_EXHAUSTED,
                "Upstream request failed after all retries",
                level="error",
                method=method,
                attempts=attempts,
                last_status=last_status,
            )
            raise RetryExhaustedError(
                f"Request failed after {attempts} attempts",
                details={"method": method, "attempts": attempts, "last_status": last_status},
            )

        return response
