"""HTTP cache middleware for the dataset endpoints.

The dataset is loaded once per process, so successful responses carry
Cache-Control and a weak ETag; loading/failed states (503) are never cached.
"""

from __future__ import annotations

import hashlib
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response as StarletteResponse

# Paths eligible for caching with their max-age in seconds.
_CACHE_RULES: list[tuple[str, int]] = [
    ("/v1/map/layers/", 3600),           # 1 hour (geometry layers)
    ("/v1/national", 3600),
    ("/v1/substances", 3600),
    ("/v1/municipalities/", 600),        # 10 min
]


def _match_cache_rule(path: str) -> int | None:
    """Return max-age if path matches a cache rule, else None."""
    for prefix, max_age in _CACHE_RULES:
        if path.startswith(prefix):
            return max_age
    return None


def _compute_etag(body: bytes) -> str:
    digest = hashlib.md5(body, usedforsecurity=False).hexdigest()[:16]
    return f'W/"{digest}"'


class CacheHeaderMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> StarletteResponse:
        if request.method != "GET":
            return await call_next(request)

        max_age = _match_cache_rule(request.url.path)
        if max_age is None:
            return await call_next(request)

        response: StarletteResponse = await call_next(request)
        if response.status_code != 200:
            return response

        body_chunks: list[bytes] = []
        async for chunk in response.body_iterator:
            body_chunks.append(chunk if isinstance(chunk, bytes) else chunk.encode("utf-8"))
        body = b"".join(body_chunks)

        etag = _compute_etag(body)
        cache_headers = {"ETag": etag, "Cache-Control": f"public, max-age={max_age}"}

        if request.headers.get("if-none-match") == etag:
            return Response(status_code=304, headers=cache_headers)

        headers = {
            key: value
            for key, value in response.headers.items()
            if key.lower() not in {"content-length", "etag", "cache-control"}
        }
        return Response(
            content=body,
            status_code=response.status_code,
            headers={**headers, **cache_headers},
            media_type=response.media_type,
        )
