import logging
from typing import Any

import httpx
import structlog
from tenacity import (
    after_log,
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..core.models import Credentials

log = structlog.get_logger()
# Get standard logger for tenacity callbacks
std_log = logging.getLogger(__name__)

USER_AGENT = "biblink_creator/0.1"


def should_retry_on_status(exception: BaseException) -> bool:
    """Determine if we should retry based on exception type or status code."""
    if isinstance(exception, httpx.HTTPStatusError):
        # Retry on 429 (rate limit), 5xx (server errors), and 408 (timeout)
        return exception.response.status_code in (408, 429, 500, 502, 503, 504)
    return isinstance(exception, (httpx.TimeoutException, httpx.ConnectError))


@retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=2, max=60),
    retry=retry_if_exception(should_retry_on_status),
    before_sleep=before_sleep_log(std_log, logging.WARNING),
    after=after_log(std_log, logging.DEBUG),
    reraise=True,
)
def request_with_retry(client: httpx.Client, method: str, url: str, **kwargs: Any) -> httpx.Response:
    """
    Send an idempotent request, retrying transient failures.

    Args:
        client: Client carrying auth, headers and timeouts
        method: HTTP method
        url: Target URL
        **kwargs: Passed through to ``client.request``

    Returns:
        The successful httpx.Response

    Raises:
        httpx.HTTPStatusError: For non-retryable statuses, or after all retries
        httpx.TransportError: For network errors after all retries
    """
    try:
        resp = client.request(method, url, **kwargs)
        resp.raise_for_status()
        log.debug("http_request_success", method=method, url=url, status=resp.status_code)
        return resp
    except httpx.HTTPStatusError as e:
        log.error(
            "http_status_error",
            method=method,
            url=url,
            status=e.response.status_code,
            response_text=e.response.text[:500] if e.response.text else None,
        )
        raise
    except httpx.TransportError as e:
        log.error("http_network_error", method=method, url=url, error=str(e), error_type=type(e).__name__)
        raise


def basic_auth(credentials: Credentials | None) -> httpx.BasicAuth | None:
    if credentials is None:
        return None
    return httpx.BasicAuth(credentials.username, credentials.password)


def get_sync_client(
    credentials: Credentials | None = None,
    connect_timeout: float = 10.0,
    read_timeout: float = 300.0,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """
    Create a blocking client for repository traffic.

    Args:
        credentials: Optional HTTP basic credentials
        connect_timeout: Seconds allowed to establish a connection
        read_timeout: Seconds allowed between received bytes
        transport: Optional transport (tests use httpx.MockTransport)
    """
    return httpx.Client(
        auth=basic_auth(credentials),
        headers={"User-Agent": USER_AGENT},
        timeout=httpx.Timeout(read_timeout, connect=connect_timeout),
        transport=transport,
        follow_redirects=True,
    )


def get_client(
    connect_timeout: float = 10.0,
    read_timeout: float = 60.0,
    max_connections: int = 20,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """
    Create an httpx AsyncClient for the download workflow.

    Args:
        connect_timeout: Seconds allowed to establish a connection
        read_timeout: Seconds allowed between received bytes
        max_connections: Upper bound on pooled connections
        transport: Optional transport (tests use httpx.MockTransport)
    """
    limits = httpx.Limits(
        max_keepalive_connections=min(10, max_connections),
        max_connections=max_connections,
        keepalive_expiry=30.0,
    )
    return httpx.AsyncClient(
        headers={"User-Agent": USER_AGENT},
        timeout=httpx.Timeout(read_timeout, connect=connect_timeout),
        limits=limits,
        transport=transport,
        follow_redirects=True,
    )
