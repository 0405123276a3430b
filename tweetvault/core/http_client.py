"""httpx client factory for media fetches.

Image downloads go straight to Twitter's CDN (pbs.twimg.com), which serves
anonymous requests but expects a browser-like Referer. Reads get a generous
timeout because "orig" sized photos can be several megabytes.
"""

import httpx

CONNECT_TIMEOUT = 10.0
READ_TIMEOUT = 60.0
WRITE_TIMEOUT = 10.0
POOL_TIMEOUT = 10.0

# Per-job image fan-out is small; keep a few spare connections for keep-alive
MAX_CONNECTIONS = 10
MAX_KEEPALIVE_CONNECTIONS = 5

USER_AGENT = "TweetVault/1.0 (media archiver)"
MEDIA_ACCEPT = "image/avif,image/webp,image/png,image/jpeg,image/*;q=0.8,*/*;q=0.5"
REFERER = "https://x.com/"


def media_timeout() -> httpx.Timeout:
    return httpx.Timeout(
        connect=CONNECT_TIMEOUT,
        read=READ_TIMEOUT,
        write=WRITE_TIMEOUT,
        pool=POOL_TIMEOUT,
    )


def media_headers() -> dict[str, str]:
    return {
        "User-Agent": USER_AGENT,
        "Accept": MEDIA_ACCEPT,
        "Referer": REFERER,
    }


def create_client(
    *,
    timeout: httpx.Timeout | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build the AsyncClient used to download images.

    Redirects are followed (the CDN occasionally 302s to a regional host).
    The caller owns the client and must close it, typically with
    ``async with``.

    Args:
        timeout: Override for the media timeouts.
        transport: Custom transport, e.g. ``httpx.MockTransport`` in tests.
    """
    return httpx.AsyncClient(
        timeout=timeout or media_timeout(),
        headers=media_headers(),
        limits=httpx.Limits(
            max_connections=MAX_CONNECTIONS,
            max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
        ),
        follow_redirects=True,
        max_redirects=5,
        transport=transport,
    )
