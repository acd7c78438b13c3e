"""
Google Gemini (Generative Language API) adapter.

Text and function calls are nested in ``candidates[0].content.parts``;
function calls carry an ``args`` object and no id, so ids are synthesized.
"""

import logging
from typing import Optional, List, Dict, Any

from ..core.errors import ProviderResponseError
from ..core.interface import ProviderCapability
from ..models.message import Message, ContentPart
from ..models.response import ChatResponse, StreamChunk, FinishReason
from ..tools.converters import GoogleToolConverter
from .base import HTTPProviderAdapter, BASE_CAPABILITIES, tool_choice_name

logger = logging.getLogger(__name__)

ROLE_MAP = {
    "user": "user",
    "assistant": "model",
    "tool": "function",
}

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


class GoogleAdapter(HTTPProviderAdapter):
    """
    Gemini API adapter.

    The API key travels as the ``key`` query parameter and the model is part
    of the URL path.
    """

    PROVIDER_TYPE = "google"
    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
    DEFAULT_MAX_TOKENS = 2048
    CAPABILITIES = BASE_CAPABILITIES | {ProviderCapability.TOOLS, ProviderCapability.IMAGES}
    CONVERTER_CLASS = GoogleToolConverter
    MODELS = ["gemini-1.5-pro", "gemini-1.5-flash", "gemini-2.0-flash"]
    FINISH_REASONS = {
        "STOP": FinishReason.STOP.value,
        "MAX_TOKENS": FinishReason.LENGTH.value,
        "SAFETY": FinishReason.CONTENT_FILTER.value,
        "RECITATION": FinishReason.CONTENT_FILTER.value,
        "OTHER": FinishReason.STOP.value,
    }

    def _endpoint(self, model: str, stream: bool) -> str:
        action = "streamGenerateContent" if stream else "generateContent"
        return f"/models/{model}:{action}"

    def _query_params(self, stream: bool) -> Dict[str, str]:
        params = {"key": self._config.api_key}
        if stream:
            params["alt"] = "sse"
        return params

    def _finish_reason(self, raw: Optional[str]) -> Optional[str]:
        if not raw:
            return None
        return self.FINISH_REASONS.get(raw, raw.lower())

    def format_messages(self, messages: List[Message]) -> Dict[str, Any]:
        """
        Convert messages to Gemini ``contents``.

        Returns:
            Dict with ``contents`` and ``systemInstruction`` (or None)
        """
        system_parts: List[str] = []
        contents: List[Dict[str, Any]] = []

        for message in messages:
            if message.role == "system":
                system_parts.append(message.text_content())
                continue

            if message.role == "tool":
                name = message.name or message.tool_call_id
                part = {
                    "functionResponse": {
                        "name": name,
                        "response": {"name": name, "content": message.text_content()},
                    }
                }
                if contents and contents[-1]["role"] == "function":
                    contents[-1]["parts"].append(part)
                else:
                    contents.append({"role": "function", "parts": [part]})
                continue

            parts = self._format_parts(message)
            if message.tool_calls:
                parts.extend(
                    {"functionCall": {"name": call.name, "args": call.arguments}}
                    for call in message.tool_calls
                )
            contents.append({"role": ROLE_MAP[message.role], "parts": parts})

        system_instruction = None
        if system_parts:
            system_instruction = {"parts": [{"text": "\n\n".join(system_parts)}]}

        return {"contents": contents, "systemInstruction": system_instruction}

    def _format_parts(self, message: Message) -> List[Dict[str, Any]]:
        if isinstance(message.content, str):
            return [{"text": message.content}] if message.content else []
        return [self._format_part(part) for part in message.content]

    def _format_part(self, part: ContentPart) -> Dict[str, Any]:
        if part.type == "text":
            return {"text": part.text}
        if part.base64:
            return {"inlineData": {"mimeType": part.mime_type, "data": part.raw_base64}}
        return {"fileData": {"mimeType": part.mime_type, "fileUri": part.url}}

    def build_request(self, model: str, messages: Any, options: Dict[str, Any]) -> Dict[str, Any]:
        generation_config: Dict[str, Any] = {
            "temperature": self._temperature(options),
            "maxOutputTokens": options.get("max_tokens") or self.DEFAULT_MAX_TOKENS,
        }
        if options.get("top_p") is not None:
            generation_config["topP"] = options["top_p"]
        if options.get("stop"):
            generation_config["stopSequences"] = options["stop"]

        response_format = options.get("response_format")
        if response_format and response_format.get("type") == "json_object":
            generation_config["responseMimeType"] = "application/json"

        body: Dict[str, Any] = {
            "contents": messages["contents"],
            "generationConfig": generation_config,
            "safetySettings": SAFETY_SETTINGS,
        }
        if messages.get("systemInstruction"):
            body["systemInstruction"] = messages["systemInstruction"]

        tools = options.get("tools")
        if tools:
            body["tools"] = tools
            if options.get("tool_choice") is not None:
                body["toolConfig"] = self._format_tool_choice(options["tool_choice"])

        return body

    def _format_tool_choice(self, tool_choice: Any) -> Dict[str, Any]:
        name = tool_choice_name(tool_choice)
        if name:
            config = {"mode": "ANY", "allowedFunctionNames": [name]}
        elif tool_choice == "none":
            config = {"mode": "NONE"}
        elif tool_choice in ("required", "any"):
            config = {"mode": "ANY"}
        else:
            config = {"mode": "AUTO"}
        return {"functionCallingConfig": config}

    def _candidate(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        candidates = data.get("candidates") or []
        return candidates[0] if candidates else None

    def _usage_of(self, data: Dict[str, Any]):
        usage = data.get("usageMetadata")
        if not usage:
            return None
        return self._usage(usage.get("promptTokenCount"), usage.get("candidatesTokenCount"))

    def parse_response(self, data: Dict[str, Any]) -> ChatResponse:
        if data.get("error"):
            error = data["error"]
            raise ProviderResponseError(
                error.get("message") if isinstance(error, dict) else str(error),
                provider=self._name,
            )

        candidate = self._candidate(data)
        if candidate is None:
            reason = (data.get("promptFeedback") or {}).get("blockReason")
            message = f"No candidates in response (blocked: {reason})" if reason else "No candidates in response"
            raise ProviderResponseError(message, provider=self._name)

        text_parts: List[str] = []
        raw_calls: List[Dict[str, Any]] = []
        for part in (candidate.get("content") or {}).get("parts") or []:
            if "text" in part:
                text_parts.append(part["text"])
            elif "functionCall" in part:
                raw_calls.append(part)

        tool_calls = self.tool_converter.parse_tool_calls(raw_calls)
        finish_reason = self._finish_reason(candidate.get("finishReason"))
        if tool_calls and finish_reason == FinishReason.STOP.value:
            finish_reason = FinishReason.TOOL_CALLS.value

        return ChatResponse(
            id=data.get("responseId") or "",
            model=data.get("modelVersion") or "",
            provider=self._name,
            content="".join(text_parts),
            tool_calls=tool_calls,
            finish_reason=finish_reason,
            usage=self._usage_of(data),
        )

    def _parse_stream_event(self, event: Dict[str, Any]) -> Optional[StreamChunk]:
        if event.get("error"):
            error = event["error"]
            return StreamChunk(error=error.get("message") if isinstance(error, dict) else str(error))

        usage = self._usage_of(event)
        candidate = self._candidate(event)
        if candidate is None:
            if usage:
                return StreamChunk(usage=usage)
            return StreamChunk(error="No candidates in stream chunk")

        text_parts: List[str] = []
        raw_calls: List[Dict[str, Any]] = []
        for part in (candidate.get("content") or {}).get("parts") or []:
            if "text" in part:
                text_parts.append(part["text"])
            elif "functionCall" in part:
                raw_calls.append(part)

        # Calls arrive whole; the normalizer reports STOP as tool_calls once
        # any call has been delivered
        finish_reason = self._finish_reason(candidate.get("finishReason"))
        return StreamChunk(
            id=event.get("responseId"),
            content="".join(text_parts) or None,
            completed_tool_calls=self.tool_converter.parse_tool_calls(raw_calls),
            finish_reason=finish_reason,
            # Gemini has no terminator event; the finish reason ends the stream
            complete=finish_reason is not None,
            usage=usage,
        )
