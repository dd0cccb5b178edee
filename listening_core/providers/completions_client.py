"""OpenAI 兼容 chat/completions 端点的 Provider 适配器（GLM、Kimi 共用）。

- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>
- 流式: SSE，每行 ``data: {...}``，以 ``data: [DONE]`` 结束。

二进制片段以 ``image_url`` 的 data URL 形式发送。
"""

import json
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

import httpx

from listening_core.config.settings import settings
from listening_core.domain.exceptions import (
    ApiError,
    NetworkError,
    RateLimitError,
    ValidationError,
)
from listening_core.domain.models import (
    BinaryPart,
    ChatMessage,
    ChatRequest,
    ChatStreamChunk,
    ChatUsage,
    Document,
    Message,
    TextPart,
)
from listening_core.engine.cancellation import CancellationToken
from listening_core.engine.context import compose_system_instruction, map_history
from listening_core.infrastructure.logging.logger import logger
from listening_core.providers.base import FALLBACK_FRAGMENT
from listening_core.providers.registry import ModelConfig, get_provider_config

_ROLE_MAP = {"user": "user", "model": "assistant", "system": "system"}


class CompletionsClient:
    """chat/completions Provider 客户端，实现 GenerationSource 与 DistillationSource。"""

    def __init__(self, provider: str, cfg=settings):
        self._settings = cfg
        self._provider = get_provider_config(provider)
        self.name = self._provider.name

    # ---- GenerationSource ----

    def generate_stream(
        self,
        history: Sequence[Message],
        documents: Sequence[Document],
        rules: Sequence[str],
        token: CancellationToken,
    ) -> Iterator[str]:
        req = ChatRequest(
            provider=self.name,
            model=getattr(self._settings, "default_model", "chat"),
            messages=map_history(history),
            system_instruction=compose_system_instruction(documents, rules),
        )
        usage: Optional[ChatUsage] = None
        finish_reason: Optional[str] = None
        try:
            for chunk in self.chat_stream(req):
                if token.cancelled:
                    return
                usage = chunk.usage or usage
                finish_reason = chunk.finish_reason or finish_reason
                if chunk.delta_text:
                    yield chunk.delta_text
        except Exception as e:
            logger.error(
                "Error generating response stream",
                exc_info=True,
                extra={"extra": {"provider": self.name, "error": str(e)}},
            )
            yield FALLBACK_FRAGMENT
            return

        fields: Dict[str, Any] = {"provider": self.name, "finish_reason": finish_reason}
        if usage is not None:
            fields.update(
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                total_tokens=usage.total_tokens,
            )
        logger.info("Stream finished", extra={"extra": fields})

    # ---- DistillationSource ----

    def distill(self, prompt: str) -> str:
        req = ChatRequest(
            provider=self.name,
            model=getattr(self._settings, "distill_model", "distill"),
            messages=[ChatMessage(role="user", parts=[TextPart(prompt)])],
        )
        return self.complete(req)

    # ---- 非流式 ----

    def complete(self, req: ChatRequest) -> str:
        model_cfg = self._model_config(req.model)
        payload = self._build_payload(req, model_cfg, stream=False)
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(self._endpoint(), json=payload, headers=self._headers())
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        self._raise_for_status(resp.status_code, resp.text)
        data = resp.json()
        choices = data.get("choices") or []
        if not choices:
            return ""
        message = choices[0].get("message") or {}
        return message.get("content") or ""

    # ---- 流式 ----

    def chat_stream(self, req: ChatRequest) -> Iterable[ChatStreamChunk]:
        model_cfg = self._model_config(req.model)
        payload = self._build_payload(req, model_cfg, stream=True)
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                with client.stream("POST", self._endpoint(), json=payload, headers=self._headers()) as resp:
                    if resp.status_code >= 400:
                        resp.read()
                        self._raise_for_status(resp.status_code, resp.text)
                    for line in resp.iter_lines():
                        if not line:
                            continue
                        data_str = line[5:].strip() if line.startswith("data:") else line.strip()
                        if not data_str or data_str == "[DONE]":
                            continue
                        try:
                            payload_chunk = json.loads(data_str)
                        except json.JSONDecodeError:
                            continue
                        yield self._parse_stream_chunk(payload_chunk, req)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))

    # ---- 辅助方法 ----

    def _api_key(self) -> str:
        key = getattr(self._settings, f"{self.name}_api_key", None)
        if not key:
            raise ValidationError(code="MISSING_API_KEY", message=f"{self.name.upper()}_API_KEY not set")
        return key

    def _endpoint(self) -> str:
        base = getattr(self._settings, f"{self.name}_base_url", None) or self._provider.base_url
        return f"{base.rstrip('/')}/chat/completions"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key()}",
            "Content-Type": "application/json",
        }

    def _model_config(self, logical_name: str) -> ModelConfig:
        try:
            return self._provider.models[logical_name]
        except KeyError:
            raise ValidationError(code="UNKNOWN_MODEL", message=f"{self.name}: {logical_name}")

    def _raise_for_status(self, status_code: int, body: str) -> None:
        if status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message=f"{self.name} rate limit", http_status=429)
        if status_code >= 400:
            raise ApiError(code="API_ERROR", message=body, http_status=status_code)

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig, stream: bool) -> dict:
        msgs: List[Dict[str, Any]] = []
        if req.system_instruction:
            msgs.append({"role": "system", "content": req.system_instruction})
        msgs.extend(self._message_to_payload(m) for m in req.messages)
        return {
            "model": model_cfg.provider_model,
            "messages": msgs,
            "temperature": req.temperature if req.temperature is not None else model_cfg.default_temperature,
            "max_tokens": req.max_tokens or model_cfg.max_tokens,
            "top_p": req.top_p,
            "stream": stream,
        }

    def _message_to_payload(self, message: ChatMessage) -> Dict[str, Any]:
        role = _ROLE_MAP[message.role]
        if all(isinstance(p, TextPart) for p in message.parts):
            return {"role": role, "content": "".join(p.text for p in message.parts)}
        content: List[Dict[str, Any]] = []
        for part in message.parts:
            if isinstance(part, BinaryPart):
                content.append(
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{part.mime_type};base64,{part.data}"},
                    }
                )
            else:
                content.append({"type": "text", "text": part.text})
        return {"role": role, "content": content}

    def _parse_stream_chunk(self, data: dict, req: ChatRequest) -> ChatStreamChunk:
        texts: List[str] = []
        finish_reason = None
        for ch in data.get("choices", []):
            delta = ch.get("delta") or {}
            if delta.get("content"):
                texts.append(delta["content"])
            finish_reason = ch.get("finish_reason") or finish_reason
        usage_raw = data.get("usage") or {}
        usage = None
        if usage_raw:
            usage = ChatUsage(
                prompt_tokens=usage_raw.get("prompt_tokens", 0),
                completion_tokens=usage_raw.get("completion_tokens", 0),
                total_tokens=usage_raw.get("total_tokens", 0),
            )
        return ChatStreamChunk(
            provider=self.name,
            model=req.model,
            delta_text="".join(texts),
            finish_reason=finish_reason,
            usage=usage,
        )
