"""对话消息与线上消息之间的转换。

请求方向（MessageMapper）：
- system / user 消息按角色和内容一一映射，user 消息带上附件 id。
- 携带工具调用的 assistant 消息映射为 content 为空、带 function_call
  和 functions_state_id 的线上消息（每个调用一条）。
- tool 消息映射为 function 角色，name 为工具名。
- 可选地把唯一的 system 消息移动到首位，其余消息相对顺序不变。

响应方向（to_message）：把线上消息解析为 assistant Message。
"""

from typing import List, Optional, Sequence, Tuple

from gigachat_core.chat.options import ChatOptions, resolve_function_call
from gigachat_core.domain.completion import (
    CompletionMessage,
    CompletionRequest,
    FunctionCall,
    FunctionDescription,
)
from gigachat_core.domain.exceptions import ValidationError
from gigachat_core.domain.models import Message, Role
from gigachat_core.tools import structured
from gigachat_core.tools.definitions import ToolCallRequest
from gigachat_core.tools.executor import ToolRegistry

FUNCTION_ROLE = "function"


class MessageMapper:
    def __init__(self, make_system_prompt_first: bool = True):
        self._make_system_prompt_first = make_system_prompt_first

    def normalize(self, messages: Sequence[Message]) -> List[Message]:
        """开启时把 system 消息移到首位；关闭时原样返回。"""

        ordered = list(messages)
        if not self._make_system_prompt_first:
            return ordered
        for i, message in enumerate(ordered):
            if message.role is Role.SYSTEM:
                if i > 0:
                    ordered.insert(0, ordered.pop(i))
                break
        return ordered

    def to_wire(self, messages: Sequence[Message]) -> Tuple[CompletionMessage, ...]:
        wire: List[CompletionMessage] = []
        for message in self.normalize(messages):
            wire.extend(self._convert(message))
        return tuple(wire)

    def build_request(
        self,
        messages: Sequence[Message],
        options: ChatOptions,
        registry: ToolRegistry,
        stream: bool = False,
    ) -> CompletionRequest:
        """由消息序列和生效参数构造请求；开启结构化输出时追加虚拟函数。"""

        if not options.model:
            raise ValidationError(code="MISSING_MODEL", message="Model name is not configured")
        functions = tuple(FunctionDescription.from_descriptor(d) for d in registry.descriptors())
        request = CompletionRequest(
            model=options.model,
            messages=self.to_wire(messages),
            functions=functions,
            function_call=resolve_function_call(
                options,
                has_functions=bool(functions) or options.structured_output_enabled,
            ),
            temperature=options.temperature,
            top_p=options.top_p,
            max_tokens=options.max_tokens,
            repetition_penalty=options.repetition_penalty,
            update_interval=options.update_interval,
            profanity_check=options.profanity_check,
            stream=stream,
        )
        if options.structured_output_enabled:
            request = structured.attach(request, options.output_schema)
        return request

    @staticmethod
    def _convert(message: Message) -> List[CompletionMessage]:
        if message.role is Role.ASSISTANT and message.tool_calls:
            return [
                CompletionMessage(
                    role=Role.ASSISTANT.value,
                    content="",
                    function_call=FunctionCall(name=call.name, arguments=call.arguments),
                    functions_state_id=call.id,
                )
                for call in message.tool_calls
            ]
        if message.role is Role.TOOL:
            return [CompletionMessage(role=FUNCTION_ROLE, content=message.content, name=message.tool_name)]
        attachments = tuple(m.id for m in message.media if m.id) if message.role is Role.USER else ()
        return [CompletionMessage(role=message.role.value, content=message.content, attachments=attachments)]


def to_message(body: Optional[CompletionMessage]) -> Message:
    """把响应中的线上消息解析为 assistant Message。"""

    if body is None:
        return Message.assistant("")
    tool_calls: Tuple[ToolCallRequest, ...] = ()
    if body.function_call is not None and body.function_call.name:
        tool_calls = (
            ToolCallRequest(
                id=body.functions_state_id,
                name=body.function_call.name,
                arguments=body.function_call.arguments,
            ),
        )
    return Message.assistant(body.content or "", tool_calls)
