"""Container health probe.

Exits 0 if the local relay answers GET /health with 200, 1 otherwise.
"""

import os
import sys

import httpx

from oauth_relay.config import DEFAULT_PORT

HEALTHCHECK_TIMEOUT_SECONDS = 2.0


def check_health(
    host: str = "localhost",
    port: int | str = DEFAULT_PORT,
    timeout: float = HEALTHCHECK_TIMEOUT_SECONDS,
) -> bool:
    """Probe the health endpoint once.

    Args:
        host: Host the relay listens on.
        port: Port the relay listens on.
        timeout: Request timeout in seconds.

    Returns:
        True if the endpoint answered 200.
    """
    try:
        response = httpx.get(f"http://{host}:{port}/health", timeout=timeout)
    except httpx.HTTPError as e:
        print(f"Health check failed: {e}", file=sys.stderr)
        return False

    print(f"Health check status: {response.status_code}")
    return response.status_code == 200


def main() -> None:
    port = os.getenv("PORT") or DEFAULT_PORT
    sys.exit(0 if check_health(port=port) else 1)


if __name__ == "__main__":
    main()
