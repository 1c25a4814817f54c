"""Async HTTP client for the gateway's endpoints."""

from typing import Any, Dict, List, Optional

import httpx

from gateway.client.consumer import FrameCallback, StreamAccumulator, consume_event_stream

DEFAULT_URL = "http://127.0.0.1:8000"


class GatewayClientError(RuntimeError):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message


def _error_message(r: httpx.Response) -> str:
    try:
        data = r.json()
    except ValueError:
        return r.text or r.reason_phrase
    if isinstance(data, dict):
        return str(data.get("error") or data.get("detail") or data)
    return str(data)


class GatewayClient:
    def __init__(
        self,
        base_url: str = DEFAULT_URL,
        *,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _stream(
        self,
        path: str,
        body: Dict[str, Any],
        acc: Optional[StreamAccumulator],
        on_frame: Optional[FrameCallback],
    ) -> StreamAccumulator:
        acc = acc if acc is not None else StreamAccumulator()
        async with self._client.stream(
            "POST", path, json=body, headers={"Accept": "text/event-stream"}
        ) as r:
            if not r.is_success:
                await r.aread()
                raise GatewayClientError(r.status_code, _error_message(r))
            return await consume_event_stream(r.aiter_bytes(), acc, on_frame)

    async def _post_json(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        r = await self._client.post(path, json=body)
        if not r.is_success:
            raise GatewayClientError(r.status_code, _error_message(r))
        return r.json()

    async def stream_chat(
        self,
        message: str,
        *,
        current_page_id: Optional[str] = None,
        accumulator: Optional[StreamAccumulator] = None,
        on_frame: Optional[FrameCallback] = None,
    ) -> StreamAccumulator:
        body: Dict[str, Any] = {"message": message}
        if current_page_id:
            body["current_page_id"] = current_page_id
        return await self._stream("/ai/chat", body, accumulator, on_frame)

    async def stream_continue(
        self,
        context: str,
        *,
        page_title: Optional[str] = None,
        accumulator: Optional[StreamAccumulator] = None,
        on_frame: Optional[FrameCallback] = None,
    ) -> StreamAccumulator:
        body: Dict[str, Any] = {"context": context}
        if page_title:
            body["page_title"] = page_title
        return await self._stream("/ai/continue", body, accumulator, on_frame)

    async def inline(self, action: str, text: str) -> Dict[str, Any]:
        return await self._post_json("/ai/inline", {"action": action, "text": text})

    async def translate(self, text: str, target_language: str) -> Dict[str, Any]:
        return await self._post_json("/ai/translate", {"text": text, "target_language": target_language})

    async def brainstorm(
        self, *, topic: Optional[str] = None, context: Optional[str] = None, page_title: Optional[str] = None
    ) -> Dict[str, Any]:
        body = {k: v for k, v in {"topic": topic, "context": context, "page_title": page_title}.items() if v}
        return await self._post_json("/ai/brainstorm", body)

    async def check_provider(
        self, provider: str, *, model: Optional[str] = None, base_url: Optional[str] = None
    ) -> Dict[str, Any]:
        body = {"provider": provider, "model": model, "base_url": base_url}
        return await self._post_json("/ai/test", {k: v for k, v in body.items() if v})

    async def embed(self, text: str, *, max_tokens: int = 1000) -> Dict[str, Any]:
        return await self._post_json("/ai/embed", {"text": text, "max_tokens": max_tokens})

    async def suggest_tags(self, content: str, *, existing_tags: Optional[List[str]] = None) -> Dict[str, Any]:
        return await self._post_json("/ai/suggest-tags", {"content": content, "existing_tags": existing_tags or []})

    async def generate_image(self, prompt: str, *, size: str = "1024x1024") -> Dict[str, Any]:
        return await self._post_json("/ai/image", {"prompt": prompt, "size": size})
