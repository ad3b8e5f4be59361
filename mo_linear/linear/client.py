"""Contains the setup for the authenticated httpx client used against Linear."""

import httpx
import structlog

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

DEFAULT_LINEAR_API_URL = "https://api.linear.app/graphql"


def get_linear_client(
    api_key: str,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Returns an httpx client authenticated with a Linear personal API key.

    Personal API keys go verbatim in the Authorization header; Linear only
    expects the Bearer scheme for OAuth access tokens.
    """
    if not api_key:
        raise ValueError("A Linear API key is required to build a client.")
    logger.debug("Creating Linear HTTP client", timeout=timeout)
    return httpx.AsyncClient(
        headers={
            "Authorization": api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        },
        timeout=httpx.Timeout(timeout),
        transport=transport,
    )
