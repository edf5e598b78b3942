import asyncio
import inspect
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Protocol, Tuple

from gigachat_core.domain.exceptions import UnknownToolError, ValidationError
from gigachat_core.domain.models import Message
from gigachat_core.infrastructure.logging.logger import log_event
from gigachat_core.tools.definitions import FewShotExample, ToolCallRequest, ToolCallResult, ToolDescriptor
from gigachat_core.tools.schema import DEFAULT_SCHEMA_CONTEXT, SchemaContext
from gigachat_core.tools.structured import (
    STRUCTURED_OUTPUT_FUNCTION_NAME,
    extract_content,
    is_structured_output_call,
)


class ToolCallback(Protocol):
    """工具回调协议。

    kind 区分普通函数（"function"）与结构化输出虚拟函数（"structured_output"）；
    invoke 接收 JSON 参数文本，返回序列化后的结果文本。
    """

    kind: str
    return_direct: bool
    descriptor: ToolDescriptor

    def invoke(self, arguments: Optional[str]) -> str:
        ...


class FunctionTool:
    """把普通 Python 可调用对象包装为工具回调。"""

    kind: ClassVar[str] = "function"

    def __init__(
        self,
        func: Callable[..., Any],
        descriptor: ToolDescriptor,
        schema_context: SchemaContext = DEFAULT_SCHEMA_CONTEXT,
        return_direct: bool = False,
    ):
        self.func = func
        self.descriptor = descriptor
        self.return_direct = return_direct
        self._schema_context = schema_context
        self._arguments_model = schema_context.arguments_model(func)

    def invoke(self, arguments: Optional[str]) -> str:
        raw = json.loads(arguments) if arguments and arguments.strip() else {}
        if not isinstance(raw, dict):
            raise ValidationError(
                code="INVALID_TOOL_ARGUMENTS",
                message=f"Arguments for tool {self.descriptor.name!r} must be a JSON object",
            )
        validated = self._arguments_model.model_validate(raw)
        kwargs = {name: getattr(validated, name) for name in type(validated).model_fields}
        result = self.func(**kwargs)
        if inspect.isawaitable(result):
            result = _wait_for(result)
        return self._schema_context.to_json_if_needed(result)


def function_tool(
    func: Callable[..., Any],
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    return_direct: bool = False,
    generate_return_schema: bool = False,
    few_shot_examples: Iterable[FewShotExample] = (),
    schema_context: SchemaContext = DEFAULT_SCHEMA_CONTEXT,
) -> FunctionTool:
    """根据函数签名构造 FunctionTool。

    - name 默认取函数名。
    - description 默认取 docstring 首段，没有 docstring 时由函数名生成。
    - generate_return_schema 为 True 时按返回值注解生成 return_parameters
      （基本类型/枚举/数组会被跳过）。
    - few_shot_examples 原样进入请求的 few_shot_examples 字段。
    """

    tool_name = name or func.__name__
    return_schema = None
    if generate_return_schema:
        return_schema = schema_context.schema_for_type(inspect.signature(func).return_annotation)
    descriptor = ToolDescriptor(
        name=tool_name,
        description=description or _describe(func),
        parameters_schema=schema_context.schema_for_callable(func),
        return_schema=return_schema,
        few_shot_examples=tuple(few_shot_examples),
    )
    return FunctionTool(func, descriptor, schema_context=schema_context, return_direct=return_direct)


def _describe(func: Callable[..., Any]) -> str:
    doc = inspect.getdoc(func)
    if doc:
        return doc.split("\n\n", 1)[0].strip()
    return func.__name__.replace("_", " ").strip()


def _wait_for(awaitable) -> Any:
    async def _run():
        return await awaitable

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(_run())
    # 调用方已处于事件循环中：在独立线程的新循环里等待结果
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="gigachat-tool") as pool:
        return pool.submit(asyncio.run, _run()).result()


class ToolRegistry:
    """一次请求内可用的工具集合，按注册顺序保存。"""

    def __init__(self, tools: Iterable[ToolCallback] = ()):
        self._tools: Dict[str, ToolCallback] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolCallback) -> None:
        name = tool.descriptor.name
        if tool.kind != "structured_output" and name == STRUCTURED_OUTPUT_FUNCTION_NAME:
            raise ValidationError(
                code="RESERVED_TOOL_NAME",
                message=f"Tool name {name!r} is reserved for structured output",
            )
        if name in self._tools:
            raise ValidationError(code="DUPLICATE_TOOL", message=f"Tool {name!r} is registered twice")
        self._tools[name] = tool

    def get(self, name: str) -> ToolCallback:
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(
                code="TOOL_NOT_FOUND",
                message=f"No tool registered under name {name!r}",
                tool_name=name,
            )
        return tool

    def descriptors(self) -> List[ToolDescriptor]:
        """调用方注册的普通工具描述（不含结构化输出虚拟函数）。"""

        return [t.descriptor for t in self._tools.values() if t.kind == "function"]

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


@dataclass(frozen=True)
class ToolTurn:
    """一轮工具调用的执行结果。

    - messages: 追加到会话的消息，每个工具调用两条（调用记录 + 结果）。
    - structured_content: 模型调用了结构化输出虚拟函数时的最终答案。
    - return_direct: 本轮所有工具都要求把结果直接返回给调用方。
    """

    messages: Tuple[Message, ...]
    structured_content: Optional[str] = None
    return_direct: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.structured_content is not None or self.return_direct


class ToolExecutor:
    def __init__(self, registry: ToolRegistry):
        self._registry = registry

    def execute(self, call: ToolCallRequest) -> ToolCallResult:
        """同步执行一次工具调用；工具抛出的异常原样向上传播。"""

        tool = self._registry.get(call.name)
        log_event(logging.INFO, "Tool call received", tool_name=call.name, tool_call_id=call.id)
        content = tool.invoke(call.arguments)
        log_event(
            logging.INFO,
            "Tool execution finished",
            tool_call_id=call.id,
            result_preview=content[:200],
        )
        return ToolCallResult(call_id=call.id, name=call.name, content=content)

    def run_turn(self, message: Message) -> ToolTurn:
        """执行 assistant 消息中请求的全部工具调用。"""

        appended: List[Message] = []
        direct_flags: List[bool] = []
        for call in message.tool_calls:
            tool = self._registry.get(call.name)
            if is_structured_output_call(call):
                log_event(logging.INFO, "Structured output call received", tool_call_id=call.id)
                return ToolTurn(messages=tuple(appended), structured_content=extract_content(call))
            result = self.execute(call)
            appended.append(Message.assistant("", (call,)))
            appended.append(Message.tool_result(result))
            direct_flags.append(tool.return_direct)
        return ToolTurn(
            messages=tuple(appended),
            return_direct=bool(direct_flags) and all(direct_flags),
        )
