"""结构化输出（虚拟函数）。

GigaChat 不保证回答符合调用方给出的 schema。这里注册一个保留名的
虚拟函数，参数 schema 即目标 schema，并在描述中要求模型先调用所有
取数工具、最后调用它；模型对它的调用参数就是最终答案。
"""

import logging
from dataclasses import dataclass, replace
from typing import ClassVar, List, Optional, Sequence

from gigachat_core.domain.completion import CompletionRequest, FunctionDescription
from gigachat_core.domain.models import Message, Role
from gigachat_core.infrastructure.logging.logger import log_event
from gigachat_core.tools.definitions import ToolCallRequest, ToolDescriptor

STRUCTURED_OUTPUT_FUNCTION_NAME = "_structured_output_function"
STRUCTURED_OUTPUT_FUNCTION_DESCRIPTION = (
    "Формирует структурированный ответ на основе диалога. "
    "Сначала вызови ВСЕ необходимые функции для получения данных, "
    "затем вызови эту функцию с данными ответа. "
    "Эта функция должна быть вызвана ПОСЛЕДНЕЙ."
)
EMPTY_OBJECT = "{}"


@dataclass(frozen=True)
class StructuredOutputSpec:
    """目标 schema、保留函数名与指令文本。"""

    schema: str
    name: str = STRUCTURED_OUTPUT_FUNCTION_NAME
    directive: str = STRUCTURED_OUTPUT_FUNCTION_DESCRIPTION


def create_tool(schema: str) -> ToolDescriptor:
    """构造结构化输出虚拟函数的描述。"""

    spec = StructuredOutputSpec(schema=schema)
    return ToolDescriptor(name=spec.name, description=spec.directive, parameters_schema=spec.schema)


def attach(request: CompletionRequest, schema: Optional[str]) -> CompletionRequest:
    """schema 非空时返回追加了虚拟函数的新请求，否则原样返回。

    虚拟函数总是排在调用方注册的函数之后。
    """

    if schema is None or not schema.strip():
        return request
    functions = tuple(request.functions or ()) + (FunctionDescription.from_descriptor(create_tool(schema)),)
    log_event(logging.DEBUG, "Structured output function added", function_count=len(functions))
    return replace(request, functions=functions)


def is_structured_output_call(call: Optional[ToolCallRequest]) -> bool:
    return call is not None and call.name == STRUCTURED_OUTPUT_FUNCTION_NAME


def is_terminal(message: Optional[Message]) -> bool:
    """消息是否包含对虚拟函数的调用。"""

    if message is None or not message.has_tool_calls:
        return False
    return any(is_structured_output_call(call) for call in message.tool_calls)


def extract_content(call: ToolCallRequest) -> str:
    """取出虚拟函数调用的参数；参数缺失时降级为空对象。"""

    if call.arguments is None:
        log_event(
            logging.WARNING,
            "Structured output function returned null arguments, using empty object",
            call_id=call.id,
        )
        return EMPTY_OBJECT
    return call.arguments


def extract(message: Message) -> str:
    """从终止消息中取出结构化答案。"""

    for call in message.tool_calls:
        if is_structured_output_call(call):
            return extract_content(call)
    raise ValueError("message does not carry a structured output call")


class StructuredOutputTool:
    """结构化输出虚拟函数的工具回调形式，调用即返回解码后的参数。"""

    kind: ClassVar[str] = "structured_output"
    return_direct: ClassVar[bool] = True

    def __init__(self, schema: str):
        self.descriptor = create_tool(schema)

    def invoke(self, arguments: Optional[str]) -> str:
        return extract_content(ToolCallRequest(id=None, name=self.descriptor.name, arguments=arguments))


FORMAT_INSTRUCTIONS_TEMPLATE = """Your response should be in JSON format.
Do not include any explanations, only provide a RFC8259 compliant JSON response following this format without deviation.
Do not include markdown code blocks in your response.
Here is the JSON Schema instance your output must adhere to:
```{schema}```"""


def format_instructions(schema: str) -> str:
    return FORMAT_INSTRUCTIONS_TEMPLATE.format(schema=schema)


def with_format_instructions(messages: Sequence[Message], schema: str) -> List[Message]:
    """未开启虚拟函数时的文本模式：把格式要求追加到最后一条 user 消息。

    没有 user 消息时追加一条新的 user 消息。原列表不变。
    """

    result = list(messages)
    instructions = format_instructions(schema)
    for position in range(len(result) - 1, -1, -1):
        message = result[position]
        if message.role is Role.USER:
            result[position] = replace(message, content=f"{message.content}\n{instructions}")
            return result
    result.append(Message.user(instructions))
    return result


def strip_code_fence(text: str) -> str:
    """去掉模型仍然加上的 ```json 代码块包裹。"""

    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    body = stripped.split("\n", 1)[1] if "\n" in stripped else stripped[3:]
    if body.rstrip().endswith("```"):
        body = body.rstrip()[:-3]
    return body.strip()
