"""Outbound HTTP with bounded timeouts and retry on transient failures.

Idempotent requests (GET, PUT, DELETE ...) are retried on 429 and 5xx
responses and on transport errors, timeouts included, with exponential backoff
and jitter. A POST may already have taken effect when it times out or the
provider answers 5xx, so it is only retried when the provider certainly did
not act on it: the connection was never established, or it answered 429.

Once retries are exhausted a transport failure becomes ``UpstreamUnavailable``;
a transient status is handed back to the caller, which decides what a non-2xx
answer means for its provider.
"""

import httpx
import structlog
from tenacity import (
    Retrying,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from storefront.errors import UpstreamUnavailable

logger = structlog.get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})


class _TransientResponse(Exception):
    def __init__(self, response: httpx.Response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


def _not_acted_on(exc: BaseException) -> bool:
    """True when a non-idempotent request certainly had no effect upstream."""
    if isinstance(exc, _TransientResponse):
        return exc.response.status_code == 429
    return isinstance(exc, httpx.ConnectError | httpx.ConnectTimeout)


class ProviderHttpClient:
    """Thin ``httpx.Client`` wrapper shared by the carrier and email adapters."""

    def __init__(
        self,
        provider: str,
        base_url: str,
        headers: dict | None = None,
        timeout: float = 15.0,
        max_retries: int = 2,
        backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.provider = provider
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers or {},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def _log_retry(self, retry_state) -> None:
        outcome = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "provider_call_retry",
            provider=self.provider,
            attempt=retry_state.attempt_number,
            error=str(outcome),
        )

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = self._client.request(method, path, **kwargs)
        if response.status_code in RETRYABLE_STATUS_CODES:
            raise _TransientResponse(response)
        return response

    def _retry_policy(self, method: str):
        if method.upper() in IDEMPOTENT_METHODS:
            return retry_if_exception_type((_TransientResponse, httpx.TransportError))
        return retry_if_exception(_not_acted_on)

    def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential_jitter(
                initial=self.backoff_seconds,
                max=self.max_backoff_seconds,
                jitter=self.backoff_seconds,
            ),
            retry=self._retry_policy(method),
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            return retrying(self._send, method, path, **kwargs)
        except _TransientResponse as exc:
            return exc.response
        except httpx.TimeoutException as exc:
            logger.error("provider_call_timeout", provider=self.provider, path=path)
            raise UpstreamUnavailable(self.provider, f"{self.provider} timed out") from exc
        except httpx.TransportError as exc:
            logger.error("provider_call_failed", provider=self.provider, path=path, error=str(exc))
            raise UpstreamUnavailable(self.provider, f"{self.provider} unreachable: {exc}") from exc

    def close(self) -> None:
        self._client.close()
