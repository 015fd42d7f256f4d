"""OpenAI 兼容 chat/completions 协议的通用适配器。

GLM 与 Kimi 都使用同一套 chat/completions 端点：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>

本模块负责：

1. 接收统一的 ChatRequest，按 ChatOptions 构造请求 JSON。
2. 调用 HTTP 接口并把网络错误、限流、服务端错误映射为业务异常。
3. 将响应 JSON（或 SSE 增量）解析为 ChatResult / ChatStreamChunk。

具体厂商只需继承并提供 name、ProviderConfig 与 api_key/base_url 的配置字段名。
"""

import json
from typing import Any, Dict, Iterable, List, Optional

import httpx

from advisor_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from advisor_core.domain.models import (
    ChatChoice,
    ChatMessage,
    ChatRequest,
    ChatResult,
    ChatStreamChoice,
    ChatStreamChunk,
    ChatUsage,
)
from advisor_core.providers.registry import ModelConfig, ProviderConfig
from advisor_core.tools.definitions import ToolCall, ToolDef


class OpenAICompatibleClient:
    """OpenAI 兼容 Provider 的基类。"""

    name: str = ""
    provider_config: ProviderConfig
    api_key_field: str = ""
    base_url_field: str = ""

    def __init__(self, settings):
        self._settings = settings

    # ---- 配置 ----

    @property
    def api_key(self) -> Optional[str]:
        return getattr(self._settings, self.api_key_field, None)

    @property
    def base_url(self) -> str:
        return getattr(self._settings, self.base_url_field, None) or self.provider_config.base_url

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise ValidationError(
                code="MISSING_API_KEY", message=f"{self.api_key_field.upper()} not set"
            )
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _model_config(self, req: ChatRequest) -> ModelConfig:
        logical = req.options.model or getattr(self._settings, "default_model", None)
        return self.provider_config.resolve(logical)

    def _check_status(self, resp: httpx.Response) -> None:
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message=f"{self.name} rate limit")
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)

    # ---- 非流式 ----

    def chat(self, req: ChatRequest) -> ChatResult:
        headers = self._headers()
        model_cfg = self._model_config(req)
        payload = self._build_payload(req, model_cfg, stream=False)
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(f"{self.base_url}/chat/completions", json=payload, headers=headers)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        self._check_status(resp)
        return self._parse_response(resp.json(), req, model_cfg)

    # ---- 流式 ----

    def chat_stream(self, req: ChatRequest) -> Iterable[ChatStreamChunk]:
        """执行一次流式对话调用，逐步 yield ChatStreamChunk。"""

        headers = self._headers()
        model_cfg = self._model_config(req)
        payload = self._build_payload(req, model_cfg, stream=True)
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                with client.stream(
                    "POST", f"{self.base_url}/chat/completions", json=payload, headers=headers
                ) as resp:
                    if resp.status_code >= 400:
                        resp.read()
                    self._check_status(resp)
                    for line in resp.iter_lines():
                        data_str = line.strip()
                        if data_str.startswith("data:"):
                            data_str = data_str[5:].strip()
                        if not data_str or data_str == "[DONE]":
                            continue
                        try:
                            payload_chunk = json.loads(data_str)
                        except json.JSONDecodeError:
                            continue
                        yield self._parse_stream_chunk(payload_chunk, req, model_cfg)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))

    # ---- 请求构造 ----

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig, stream: bool) -> dict:
        opts = req.options
        payload: Dict[str, Any] = {
            "model": model_cfg.provider_model,
            "messages": [self._message_to_payload(m) for m in req.messages],
            "temperature": opts.temperature if opts.temperature is not None else model_cfg.default_temperature,
            "max_tokens": opts.max_tokens or model_cfg.max_tokens,
            "stream": stream,
        }
        if opts.top_p is not None:
            payload["top_p"] = opts.top_p
        if opts.stop:
            payload["stop"] = list(opts.stop)
        if req.tools:
            payload["tools"] = [self._serialize_tool(tool) for tool in req.tools]
            payload["tool_choice"] = req.tool_choice
        return payload

    def _message_to_payload(self, message: ChatMessage) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": message.role, "content": message.content or ""}
        if message.tool_calls:
            payload["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": json.dumps(call.arguments, ensure_ascii=False),
                    },
                }
                for call in message.tool_calls
            ]
        if message.tool_call_id:
            payload["tool_call_id"] = message.tool_call_id
        return payload

    def _serialize_tool(self, tool: ToolDef) -> Dict[str, Any]:
        """把内部的 ToolDef 转成 function tool 描述。"""

        properties: Dict[str, Any] = {}
        required: List[str] = []
        for name, param in tool.params.items():
            schema = param.schema or {"type": "string"}
            if param.description:
                schema = {**schema, "description": param.description}
            properties[name] = schema
            if param.required:
                required.append(name)
        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": required,
                },
            },
        }

    # ---- 响应解析 ----

    def _parse_response(self, data: dict, req: ChatRequest, model_cfg: ModelConfig) -> ChatResult:
        choices = []
        for i, ch in enumerate(data.get("choices", [])):
            cm = self._build_chat_message(ch.get("message") or {})
            choices.append(ChatChoice(index=ch.get("index", i), message=cm, finish_reason=ch.get("finish_reason")))
        return ChatResult(
            choices=choices,
            usage=self._parse_usage(data.get("usage")) or ChatUsage(0, 0, 0),
            context=req.context,
            provider=self.name,
            model=data.get("model") or model_cfg.provider_model,
            raw=data,
        )

    def _parse_stream_chunk(self, data: dict, req: ChatRequest, model_cfg: ModelConfig) -> ChatStreamChunk:
        choices = []
        for i, ch in enumerate(data.get("choices", [])):
            delta_msg = self._build_chat_message(ch.get("delta") or {})
            choices.append(
                ChatStreamChoice(
                    index=ch.get("index", i),
                    delta=delta_msg,
                    finish_reason=ch.get("finish_reason"),
                )
            )
        return ChatStreamChunk(
            choices=choices,
            usage=self._parse_usage(data.get("usage")),
            context=req.context,
            provider=self.name,
            model=data.get("model") or model_cfg.provider_model,
            raw=data,
        )

    @staticmethod
    def _parse_usage(usage_raw: Optional[dict]) -> Optional[ChatUsage]:
        if not usage_raw:
            return None
        return ChatUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
        )

    def _build_chat_message(self, payload: Dict[str, Any]) -> ChatMessage:
        """解析厂商 message，兼容 tool_calls 与旧版 function_call。"""

        tool_calls: List[ToolCall] = []
        for idx, call in enumerate(payload.get("tool_calls") or []):
            func = call.get("function") or {}
            tool_calls.append(
                ToolCall(
                    id=call.get("id") or f"tool_call_{idx}",
                    name=func.get("name") or call.get("name") or "",
                    arguments=self._parse_arguments(func.get("arguments")),
                )
            )
        function_call = payload.get("function_call")
        if function_call:
            tool_calls.append(
                ToolCall(
                    id=function_call.get("id") or "function_call",
                    name=function_call.get("name") or "",
                    arguments=self._parse_arguments(function_call.get("arguments")),
                )
            )
        return ChatMessage(
            role=payload.get("role") or "assistant",
            content=payload.get("content") or "",
            tool_calls=tool_calls or None,
            tool_call_id=payload.get("tool_call_id"),
        )

    @staticmethod
    def _parse_arguments(raw: Any) -> Dict[str, Any]:
        """arguments 通常是 JSON 字符串；解析失败时保留到 `_raw`。"""

        if isinstance(raw, dict):
            return raw
        if isinstance(raw, str) and raw.strip():
            try:
                return json.loads(raw)
            except json.JSONDecodeError:
                return {"_raw": raw}
        return {}
