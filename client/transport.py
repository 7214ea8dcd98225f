"""
HTTP transport for the reconnection controller.

- open_stream(): GET {prefix}/status/stream, yields decoded frames.
- fetch_snapshot(): GET {prefix}/status, the pull path used in fallback mode.
No read timeout on the stream; heartbeats and the server's close are the
liveness signal.
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

from app.core.errors import StreamTransportError
from app.core.sse import STREAM_MEDIA_TYPE, Frame, FrameDecoder


class HttpStatusTransport:
    supports_streaming = True

    def __init__(
        self,
        base_url: str,
        api_prefix: str = "/api",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(10.0, read=None),
        )
        self._owns_client = client is None
        self._stream_path = f"{api_prefix}/status/stream"
        self._status_path = f"{api_prefix}/status"

    @asynccontextmanager
    async def open_stream(self) -> AsyncIterator[AsyncIterator[Frame]]:
        async with self._client.stream(
            "GET",
            self._stream_path,
            headers={"Accept": STREAM_MEDIA_TYPE, "Cache-Control": "no-cache"},
        ) as response:
            if response.status_code != 200:
                raise StreamTransportError(
                    f"stream rejected: HTTP {response.status_code}"
                )
            content_type = response.headers.get("content-type", "")
            if not content_type.startswith(STREAM_MEDIA_TYPE):
                raise StreamTransportError(f"unexpected content type {content_type!r}")
            yield self._frames(response)

    @staticmethod
    async def _frames(response: httpx.Response) -> AsyncIterator[Frame]:
        decoder = FrameDecoder()
        async for line in response.aiter_lines():
            frame = decoder.feed(line)
            if frame is not None:
                yield frame

    async def fetch_snapshot(self) -> list[dict[str, Any]]:
        response = await self._client.get(self._status_path)
        response.raise_for_status()
        payload = response.json()
        members = payload.get("members") if isinstance(payload, dict) else None
        if not isinstance(members, list):
            raise StreamTransportError("status response has no members list")
        return members

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
