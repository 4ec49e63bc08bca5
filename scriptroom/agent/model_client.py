import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import openai
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_openai import ChatOpenAI

from scriptroom.errors import PermanentProviderError, ScriptRoomError, TransientProviderError

logger = logging.getLogger(__name__)

TRANSIENT_ERROR_CODES = {"rate_limit_exceeded", "insufficient_quota"}


@dataclass(frozen=True)
class ToolCallRequest:
    call_id: str
    name: str
    # Raw JSON string as returned by the provider, or an already-parsed dict.
    arguments: Union[str, Dict[str, Any]]

    def arguments_json(self) -> str:
        if isinstance(self.arguments, str):
            return self.arguments
        return json.dumps(self.arguments, ensure_ascii=True)


@dataclass(frozen=True)
class ChatMessage:
    role: str  # system | user | assistant | tool
    content: str = ""
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
    tool_call_id: Optional[str] = None


@dataclass(frozen=True)
class ModelReply:
    text: str = ""
    tool_calls: List[ToolCallRequest] = field(default_factory=list)


def _parse_extra(extra: Optional[Union[str, Dict[str, Any]]]) -> Dict[str, Any]:
    if isinstance(extra, dict):
        return dict(extra)
    if isinstance(extra, str) and extra.strip():
        try:
            return json.loads(extra)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring unparseable model_extra_params: {extra!r}")
            return {}
    return {}


def _create_chat_model(
    provider: str,
    model_id: str,
    api_key: Optional[str],
    base_url: Optional[str],
    extra_params: Optional[Union[str, Dict[str, Any]]] = None,
) -> ChatOpenAI:
    p = (provider or "").lower()
    if p not in {"openai", "openai_compatible", "vllm", "sglang", "ollama", "azure", "azure_openai"}:
        logger.warning(f"Provider '{provider}' not explicitly supported; using OpenAI-compatible ChatOpenAI.")

    extra = _parse_extra(extra_params)
    # Pull known top-level args to avoid burying them in model_kwargs.
    temperature = extra.pop("temperature", None)
    top_p = extra.pop("top_p", None)
    max_completion_tokens = extra.pop("max_completion_tokens", None)
    presence_penalty = extra.pop("presence_penalty", None)
    frequency_penalty = extra.pop("frequency_penalty", None)
    # Rate limits are retried by the orchestrator's policy, not inside the SDK.
    max_retries = extra.pop("max_retries", 0)

    return ChatOpenAI(
        model=model_id,
        api_key=api_key or None,
        base_url=base_url or None,
        temperature=temperature,
        top_p=top_p,
        max_completion_tokens=max_completion_tokens,
        presence_penalty=presence_penalty,
        frequency_penalty=frequency_penalty,
        max_retries=max_retries,
        model_kwargs=extra or {},
    )


def classify_error(exc: BaseException) -> ScriptRoomError:
    """Map a provider/SDK exception to the transient/permanent split used by the retry policy."""
    if isinstance(exc, ScriptRoomError):
        return exc
    if isinstance(exc, openai.RateLimitError):
        return TransientProviderError(str(exc))

    status = getattr(exc, "status_code", None)
    code = getattr(exc, "code", None)
    body = getattr(exc, "body", None)
    if not code and isinstance(body, dict):
        err = body.get("error")
        code = body.get("code") or (err.get("code") if isinstance(err, dict) else None)
    if status == 429 or code in TRANSIENT_ERROR_CODES:
        return TransientProviderError(str(exc))
    return PermanentProviderError(str(exc) or exc.__class__.__name__)


def _to_langchain_tool_calls(calls: Sequence[ToolCallRequest]):
    valid: List[Dict[str, Any]] = []
    invalid: List[Dict[str, Any]] = []
    for c in calls:
        args = c.arguments
        if isinstance(args, str):
            try:
                args = json.loads(args) if args.strip() else {}
            except json.JSONDecodeError:
                args = None
        if isinstance(args, dict):
            valid.append({"name": c.name, "args": args, "id": c.call_id, "type": "tool_call"})
        else:
            invalid.append({
                "name": c.name,
                "args": c.arguments_json(),
                "id": c.call_id,
                "error": "arguments are not a JSON object",
                "type": "invalid_tool_call",
            })
    return valid, invalid


def to_langchain_messages(system_prompt: str, history: Sequence[ChatMessage]) -> List[BaseMessage]:
    messages: List[BaseMessage] = []
    if system_prompt:
        messages.append(SystemMessage(content=system_prompt))
    for m in history:
        if m.role == "system":
            messages.append(SystemMessage(content=m.content))
        elif m.role == "assistant":
            if m.tool_calls:
                valid, invalid = _to_langchain_tool_calls(m.tool_calls)
                messages.append(AIMessage(content=m.content or "", tool_calls=valid, invalid_tool_calls=invalid))
            else:
                messages.append(AIMessage(content=m.content))
        elif m.role == "tool":
            messages.append(ToolMessage(content=m.content, tool_call_id=m.tool_call_id or ""))
        else:
            messages.append(HumanMessage(content=m.content))
    return messages


def _text_of(msg: BaseMessage) -> str:
    content = msg.content
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


def reply_from_message(msg: BaseMessage) -> ModelReply:
    """Extract text and tool calls, keeping the provider's order and raw argument strings."""
    calls: List[ToolCallRequest] = []
    raw_calls = (getattr(msg, "additional_kwargs", None) or {}).get("tool_calls") or []
    if raw_calls:
        for rc in raw_calls:
            fn = rc.get("function") or {}
            calls.append(ToolCallRequest(
                call_id=rc.get("id") or "",
                name=fn.get("name") or "",
                arguments=fn.get("arguments") or "",
            ))
    else:
        for tc in getattr(msg, "tool_calls", None) or []:
            calls.append(ToolCallRequest(call_id=tc.get("id") or "", name=tc["name"], arguments=tc.get("args") or {}))
        for tc in getattr(msg, "invalid_tool_calls", None) or []:
            calls.append(ToolCallRequest(call_id=tc.get("id") or "", name=tc.get("name") or "", arguments=tc.get("args") or ""))
    return ModelReply(text=_text_of(msg), tool_calls=calls)


class ModelClient:
    def __init__(self, model: BaseChatModel):
        self.model = model

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "ModelClient":
        model = _create_chat_model(
            provider=cfg.get("model_provider", "openai"),
            model_id=cfg.get("model_id", "gpt-4o"),
            api_key=cfg.get("model_api_key"),
            base_url=cfg.get("model_base_url") or None,
            extra_params=cfg.get("model_extra_params"),
        )
        return cls(model)

    async def complete(
        self,
        system_prompt: str,
        history: Sequence[ChatMessage],
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        tool_choice: str = "auto",
    ) -> ModelReply:
        messages = to_langchain_messages(system_prompt, history)
        runnable = self.model.bind_tools(list(tools), tool_choice=tool_choice) if tools else self.model
        try:
            msg = await runnable.ainvoke(messages)
        except ScriptRoomError:
            raise
        except Exception as e:
            raise classify_error(e) from e
        reply = reply_from_message(msg)
        logger.info(f"Model reply: {len(reply.text)} chars, {len(reply.tool_calls)} tool call(s)")
        return reply
