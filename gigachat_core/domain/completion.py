"""GigaChat chat/completions 线上数据结构。

请求与响应都是不可变 dataclass，提供 to_payload / from_payload
在 JSON 字典与本模块结构之间转换。具体字段以 GigaChat REST API 为准，
这里只覆盖编排层用到的子集。
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from gigachat_core.domain.models import Usage
from gigachat_core.tools.definitions import FewShotExample, ToolDescriptor


@dataclass(frozen=True)
class FunctionCall:
    """消息中的函数调用，arguments 为 JSON 文本（流式片段中可能只是一段）。"""

    name: Optional[str]
    arguments: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": self.name}
        if self.arguments is not None:
            payload["arguments"] = _decode_arguments(self.arguments)
        return payload

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "FunctionCall":
        return cls(name=data.get("name"), arguments=_encode_arguments(data.get("arguments")))


@dataclass(frozen=True)
class FunctionCallParam:
    """强制调用某个指定函数的 function_call 指令，可预填部分参数。"""

    name: str
    partial_arguments: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": self.name}
        if self.partial_arguments:
            payload["partial_arguments"] = dict(self.partial_arguments)
        return payload


@dataclass(frozen=True)
class CompletionMessage:
    """线上消息。请求中 role 必填；流式 delta 中 role 只在首个片段出现。"""

    role: Optional[str] = None
    content: Optional[str] = None
    function_call: Optional[FunctionCall] = None
    functions_state_id: Optional[str] = None
    name: Optional[str] = None
    attachments: Tuple[str, ...] = ()

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": self.role}
        if self.content is not None:
            payload["content"] = self.content
        if self.function_call is not None:
            payload["function_call"] = self.function_call.to_payload()
        if self.functions_state_id:
            payload["functions_state_id"] = self.functions_state_id
        if self.name:
            payload["name"] = self.name
        if self.attachments:
            payload["attachments"] = list(self.attachments)
        return payload

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CompletionMessage":
        raw_call = data.get("function_call")
        return cls(
            role=data.get("role"),
            content=data.get("content"),
            function_call=FunctionCall.from_payload(raw_call) if isinstance(raw_call, dict) else None,
            functions_state_id=data.get("functions_state_id"),
            name=data.get("name"),
            attachments=tuple(data.get("attachments") or ()),
        )


@dataclass(frozen=True)
class FunctionDescription:
    """请求 functions 列表中的一项。"""

    name: str
    description: str
    parameters: str
    return_parameters: Optional[str] = None
    few_shot_examples: Tuple[FewShotExample, ...] = ()

    @classmethod
    def from_descriptor(cls, descriptor: ToolDescriptor) -> "FunctionDescription":
        return cls(
            name=descriptor.name,
            description=descriptor.description,
            parameters=descriptor.parameters_schema,
            return_parameters=descriptor.return_schema,
            few_shot_examples=tuple(descriptor.few_shot_examples),
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "parameters": json.loads(self.parameters) if self.parameters else {},
        }
        if self.few_shot_examples:
            payload["few_shot_examples"] = [
                {"request": example.request, "params": dict(example.params)}
                for example in self.few_shot_examples
            ]
        if self.return_parameters:
            payload["return_parameters"] = json.loads(self.return_parameters)
        return payload


@dataclass(frozen=True)
class CompletionRequest:
    """一次 chat/completions 请求。

    function_call 为 None（不下发）、字面量 "auto"/"none"，
    或 FunctionCallParam（强制调用指定函数）。
    """

    model: str
    messages: Tuple[CompletionMessage, ...]
    functions: Tuple[FunctionDescription, ...] = ()
    function_call: Union[str, FunctionCallParam, None] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    repetition_penalty: Optional[float] = None
    update_interval: Optional[float] = None
    profanity_check: Optional[bool] = None
    stream: bool = False

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_payload() for m in self.messages],
            "stream": self.stream,
        }
        if self.functions:
            payload["functions"] = [f.to_payload() for f in self.functions]
        if isinstance(self.function_call, FunctionCallParam):
            payload["function_call"] = self.function_call.to_payload()
        elif self.function_call is not None:
            payload["function_call"] = self.function_call
        optional = {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "max_tokens": self.max_tokens,
            "repetition_penalty": self.repetition_penalty,
            "update_interval": self.update_interval,
            "profanity_check": self.profanity_check,
        }
        payload.update({k: v for k, v in optional.items() if v is not None})
        return payload


@dataclass(frozen=True)
class CompletionChoice:
    """单个候选。非流式响应使用 message，流式片段使用 delta。"""

    index: int
    message: Optional[CompletionMessage] = None
    delta: Optional[CompletionMessage] = None
    finish_reason: Optional[str] = None

    @property
    def body(self) -> CompletionMessage:
        return self.message or self.delta or CompletionMessage()


@dataclass(frozen=True)
class CompletionResponse:
    """chat/completions 响应，或流式响应中的一个片段。"""

    choices: Tuple[CompletionChoice, ...]
    id: Optional[str] = None
    model: Optional[str] = None
    created: Optional[int] = None
    object: Optional[str] = None
    usage: Optional[Usage] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CompletionResponse":
        choices: List[CompletionChoice] = []
        for i, ch in enumerate(data.get("choices") or []):
            message = ch.get("message")
            delta = ch.get("delta")
            choices.append(
                CompletionChoice(
                    index=ch.get("index", i),
                    message=CompletionMessage.from_payload(message) if isinstance(message, dict) else None,
                    delta=CompletionMessage.from_payload(delta) if isinstance(delta, dict) else None,
                    finish_reason=ch.get("finish_reason"),
                )
            )
        usage_raw = data.get("usage") or {}
        usage = None
        if usage_raw:
            usage = Usage(
                prompt_tokens=usage_raw.get("prompt_tokens", 0),
                completion_tokens=usage_raw.get("completion_tokens", 0),
                total_tokens=usage_raw.get("total_tokens", 0),
            )
        return cls(
            choices=tuple(choices),
            id=data.get("id"),
            model=data.get("model"),
            created=data.get("created"),
            object=data.get("object"),
            usage=usage,
        )


@dataclass(frozen=True)
class UploadedFile:
    """文件上传接口的响应。"""

    id: str
    filename: Optional[str] = None
    size: Optional[int] = None
    purpose: Optional[str] = None


def _decode_arguments(raw: str) -> Any:
    """GigaChat 要求 arguments 为 JSON 对象；无法解析时原样发送。"""

    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _encode_arguments(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    if isinstance(raw, str):
        return raw
    return json.dumps(raw, ensure_ascii=False)
