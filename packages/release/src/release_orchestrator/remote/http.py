from __future__ import annotations

import httpx
from tenacity.wait import wait_base

DEFAULT_USER_AGENT = "release-orchestrator/0.1"


def make_http_client(
    *,
    timeout: httpx.Timeout | None = None,
    follow_redirects: bool = True,
    user_agent: str = DEFAULT_USER_AGENT,
    headers: dict[str, str] | None = None,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    t = timeout or httpx.Timeout(connect=5.0, read=120.0, write=120.0, pool=5.0)
    return httpx.Client(
        timeout=t,
        follow_redirects=follow_redirects,
        headers={"User-Agent": user_agent, **(headers or {})},
        transport=transport,
    )


def make_timeout(*, connect: float, read: float) -> httpx.Timeout:
    return httpx.Timeout(connect=connect, read=read, write=read, pool=connect)


class DeterministicExponentialBackoff(wait_base):
    """
    0 before the first retry-able attempt, then base * 2^(n-2) capped at `cap`.
    """

    def __init__(self, *, base: float = 0.5, cap: float = 4.0) -> None:
        self._base = float(base)
        self._cap = float(cap)

    def __call__(self, retry_state) -> float:
        n = retry_state.attempt_number
        if n <= 1:
            return 0.0
        return min(self._cap, self._base * (2 ** (n - 2)))


def body_snippet(resp: httpx.Response, *, limit: int = 200) -> str | None:
    try:
        s = (resp.text or "")[:limit].strip()
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        return None
    return s or None
