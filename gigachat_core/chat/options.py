"""对话参数的合并与校验。

- ChatOptions: 模型默认参数与单次调用参数共用的不可变结构，
  所有字段默认 None，表示“未设置”。
- merge_options: 单次调用中设置了的字段覆盖默认值。
- resolve_function_call: 计算请求中的 function_call 指令。
- validate_messages: 校验消息序列的协议约束。
"""

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Mapping, Optional, Sequence, Set, Tuple, Union

from gigachat_core.domain.completion import FunctionCallParam
from gigachat_core.domain.exceptions import ProtocolStateError, ToolCallMismatchError, ValidationError
from gigachat_core.domain.models import Message, Role
from gigachat_core.tools.executor import ToolCallback


class FunctionCallMode(str, Enum):
    """function_call 指令模式。CUSTOM_FUNCTION 需配合 FunctionCallParam 使用。"""

    NONE = "none"
    AUTO = "auto"
    CUSTOM_FUNCTION = "custom_function"


@dataclass(frozen=True)
class ChatOptions:
    """对话参数。

    除生成参数外：
    - tools: 本次调用可用的工具回调。
    - internal_tool_execution_enabled: 为 False 时不在本地执行工具，
      而是把工具调用轮次直接返回给调用方（未设置视为 True）。
    - http_headers: 透传给传输层的请求头，例如 X-Session-ID。
    - structured_output_native / output_schema: 开启虚拟函数结构化输出。
    """

    model: Optional[str] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    repetition_penalty: Optional[float] = None
    update_interval: Optional[float] = None
    profanity_check: Optional[bool] = None
    function_call_mode: Optional[FunctionCallMode] = None
    function_call_param: Optional[FunctionCallParam] = None
    tools: Optional[Tuple[ToolCallback, ...]] = None
    internal_tool_execution_enabled: Optional[bool] = None
    http_headers: Optional[Mapping[str, str]] = None
    structured_output_native: Optional[bool] = None
    output_schema: Optional[str] = None

    @property
    def structured_output_enabled(self) -> bool:
        """开启了结构化输出且 schema 非空。空 schema 视为未开启。"""

        return bool(self.structured_output_native) and bool(self.output_schema and self.output_schema.strip())

    @property
    def tool_execution_enabled(self) -> bool:
        return self.internal_tool_execution_enabled is not False


# 按请求开启结构化输出的预设，与其他参数合并使用
VIRTUAL_FUNCTION_STRUCTURED_OUTPUT = ChatOptions(structured_output_native=True)


def merge_options(defaults: ChatOptions, override: Optional[ChatOptions] = None) -> ChatOptions:
    """override 中设置了的字段覆盖 defaults，其余沿用默认值。"""

    if override is None:
        return defaults
    changes = {f.name: getattr(override, f.name) for f in fields(override) if getattr(override, f.name) is not None}
    return replace(defaults, **changes)


def resolve_function_call(
    options: ChatOptions,
    has_functions: bool,
) -> Union[str, FunctionCallParam, None]:
    """计算 function_call 指令。

    - CUSTOM_FUNCTION 模式：返回调用方给出的 FunctionCallParam。
    - 显式的 none / auto 模式：返回对应字面量。
    - 未指定模式：请求中有函数时为 "auto"，否则不下发。
    """

    mode = options.function_call_mode
    if mode is FunctionCallMode.CUSTOM_FUNCTION:
        if options.function_call_param is None:
            raise ValidationError(
                code="MISSING_FUNCTION_CALL_PARAM",
                message="function_call_param is required for custom_function mode",
            )
        return options.function_call_param
    if mode is not None:
        return mode.value
    if has_functions:
        return FunctionCallMode.AUTO.value
    return None


def validate_messages(messages: Sequence[Message]) -> None:
    """校验消息序列：最多一条 system 消息；工具结果必须对应此前的工具调用。"""

    system_count = sum(1 for m in messages if m.role is Role.SYSTEM)
    if system_count > 1:
        raise ProtocolStateError(
            code="MULTIPLE_SYSTEM_MESSAGES",
            message="System prompt message must be the only one in the conversation",
            system_count=system_count,
        )

    pending: Set[str] = set()
    for message in messages:
        if message.role is Role.ASSISTANT:
            pending.update(call.id for call in message.tool_calls if call.id)
        elif message.role is Role.TOOL and message.tool_call_id is not None:
            if message.tool_call_id not in pending:
                raise ToolCallMismatchError(
                    code="TOOL_CALL_MISMATCH",
                    message=f"Tool result {message.tool_call_id!r} does not match any pending tool call",
                    tool_name=message.tool_name,
                )
