"""OpenAI Provider 适配器。

本模块负责：

1. 接收统一的 ChatRequest。
2. 将其转换为 OpenAI chat/completions 请求，结构化输出走
   response_format = {"type": "json_schema", ...}。
3. 调用 HTTP 接口并把超时/网络/API 异常统一包装为 ModelUnavailable 子类。
4. 解析响应，并用 response_format.model 校验 JSON 内容：
   类型不符直接抛 MalformedResponse，不会把半成品交给上层；
   模型拒答或内容为空时 parsed 为 None。
"""

import json
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from ledger_core.config.settings import settings
from ledger_core.domain.exceptions import (
    ApiError,
    MalformedResponse,
    NetworkError,
    RateLimitError,
    ValidationError,
)
from ledger_core.domain.expense_schema import ResponseFormat
from ledger_core.domain.models import ChatChoice, ChatMessage, ChatRequest, ChatResult, ChatUsage
from ledger_core.providers.registry import OPENAI_CONFIG, ModelConfig


class OpenAIClient:
    """OpenAI 兼容接口客户端。"""

    name = "openai"

    def __init__(self, cfg=settings):
        # Settings 里包含 base_url、api_key、超时等配置
        self._settings = cfg

    def chat(self, req: ChatRequest) -> ChatResult:
        """执行一次非流式对话调用，超时上限为 settings.http_timeout。"""

        if not getattr(self._settings, "openai_api_key", None):
            raise ValidationError(code="MISSING_API_KEY", message="OPENAI_API_KEY not set")
        model_cfg = OPENAI_CONFIG.models[req.model]
        payload = self._build_payload(req, model_cfg)
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                base = getattr(self._settings, "openai_base_url", None) or OPENAI_CONFIG.base_url
                resp = client.post(
                    f"{base}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self._settings.openai_api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.TimeoutException as e:
            raise NetworkError(code="TIMEOUT", message=str(e) or "model request timed out", http_status=504)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), http_status=503)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="OpenAI rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponse(code="MALFORMED_RESPONSE", message=f"response is not JSON: {e}", http_status=502)
        return self._parse_response(data, req)

    # ---- 辅助方法 ----

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model_cfg.provider_model,
            "messages": [self._message_to_payload(m) for m in req.messages],
        }
        temperature = req.temperature if req.temperature is not None else model_cfg.default_temperature
        if temperature is not None:
            payload["temperature"] = temperature
        max_tokens = req.max_tokens or model_cfg.max_tokens
        if max_tokens:
            payload["max_tokens"] = max_tokens
        if req.response_format is not None:
            payload["response_format"] = req.response_format.to_payload()
        return payload

    @staticmethod
    def _message_to_payload(message: ChatMessage) -> Dict[str, Any]:
        if message.is_image:
            return {
                "role": message.role,
                "content": [{"type": "image_url", "image_url": {"url": message.image_url}}],
            }
        return {"role": message.role, "content": message.content}

    def _parse_response(self, data: Dict[str, Any], req: ChatRequest) -> ChatResult:
        choices: list[ChatChoice] = []
        for i, ch in enumerate(data.get("choices") or []):
            msg = ch.get("message") or {}
            content = msg.get("content") or ""
            refusal = msg.get("refusal")
            parsed = None
            if req.response_format is not None and content and not refusal:
                parsed = self._parse_structured(content, req.response_format)
            choices.append(
                ChatChoice(
                    index=ch.get("index", i),
                    content=content,
                    parsed=parsed,
                    refusal=refusal,
                    finish_reason=ch.get("finish_reason"),
                )
            )
        usage_raw = data.get("usage") or {}
        usage = None
        if usage_raw:
            usage = ChatUsage(
                prompt_tokens=usage_raw.get("prompt_tokens", 0),
                completion_tokens=usage_raw.get("completion_tokens", 0),
                total_tokens=usage_raw.get("total_tokens", 0),
            )
        return ChatResult(provider=self.name, model=req.model, choices=choices, usage=usage, raw=data)

    @staticmethod
    def _parse_structured(content: str, fmt: ResponseFormat) -> Optional[BaseModel]:
        """json.loads + pydantic 校验，两步任一失败都视为 MalformedResponse。"""

        try:
            obj = json.loads(content)
        except json.JSONDecodeError as e:
            raise MalformedResponse(code="MALFORMED_RESPONSE", message=f"structured content is not JSON: {e}", http_status=502)
        if obj is None:
            return None
        try:
            return fmt.model.model_validate(obj)
        except SchemaValidationError as e:
            raise MalformedResponse(
                code="SCHEMA_VALIDATION_ERROR",
                message=str(e),
                http_status=502,
                schema=fmt.name,
            )
