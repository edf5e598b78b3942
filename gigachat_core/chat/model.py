"""GigaChat 对话模型：工具调用循环的编排。

一次调用的流程：

1. 合并默认参数与本次参数，校验消息序列（在任何远程调用之前）。
2. 上传尚未上传的附件。
3. 构造请求并调用传输层；响应以工具调用结束时，本地执行工具，
   把调用记录与结果追加到会话，再发起下一次请求，直到模型给出最终回答。
4. 结构化输出虚拟函数被调用时，以其参数作为最终回答立即结束。

流式调用遵循同样的循环：普通片段逐个转发；工具调用轮次的片段不转发，
执行完工具后重新发起流式请求。调用方提前关闭迭代器时，上游流随之关闭。
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Type, TypeVar
from uuid import uuid4

from gigachat_core.chat.attachments import AttachmentResolver
from gigachat_core.chat.mapper import MessageMapper, to_message
from gigachat_core.chat.options import ChatOptions, merge_options, validate_messages
from gigachat_core.chat.streaming import StreamAssembler
from gigachat_core.chat.usage import UsageAccumulator, build_metadata
from gigachat_core.config.settings import settings
from gigachat_core.domain.completion import CompletionResponse
from gigachat_core.domain.exceptions import ToolLoopLimitError, ValidationError
from gigachat_core.domain.models import ChatResponse, FinishReason, Generation, Message, Role
from gigachat_core.infrastructure.logging.logger import logger
from gigachat_core.providers.base import ChatTransport
from gigachat_core.providers import create_transport
from gigachat_core.tools.executor import ToolExecutor, ToolRegistry, ToolTurn
from gigachat_core.tools.schema import DEFAULT_SCHEMA_CONTEXT, SchemaContext
from gigachat_core.tools import structured

T = TypeVar("T")

DEFAULT_MODEL_NAME = "GigaChat"


@dataclass(frozen=True)
class _CallContext:
    """单次调用内不变的上下文。"""

    options: ChatOptions
    registry: ToolRegistry
    messages: Tuple[Message, ...]
    media_ids: Optional[Tuple[str, ...]]
    log_ctx: Dict[str, Any]

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self.options.http_headers or {})


class GigaChatModel:
    """GigaChat 对话模型。

    Args:
        transport: 传输层实现（见 providers.base.ChatTransport）
        default_options: 默认对话参数，单次调用的参数在其上覆盖
        make_system_prompt_first: 是否把 system 消息移动到首位
        max_tool_round_trips: 单次调用内远程往返的上限，None 表示不限制
        upload_max_workers: 附件并发上传线程数
        schema_context: schema 生成与 JSON 序列化上下文
    """

    def __init__(
        self,
        transport: ChatTransport,
        default_options: Optional[ChatOptions] = None,
        *,
        make_system_prompt_first: bool = True,
        max_tool_round_trips: Optional[int] = None,
        upload_max_workers: int = 4,
        schema_context: SchemaContext = DEFAULT_SCHEMA_CONTEXT,
    ):
        if transport is None:
            raise ValidationError(code="MISSING_TRANSPORT", message="transport must not be None")
        options = default_options or ChatOptions()
        if options.model is None:
            options = replace(options, model=DEFAULT_MODEL_NAME)
        self._transport = transport
        self._default_options = options
        self._mapper = MessageMapper(make_system_prompt_first=make_system_prompt_first)
        self._attachments = AttachmentResolver(transport, max_workers=upload_max_workers)
        self._max_tool_round_trips = max_tool_round_trips
        self._schema_context = schema_context

    @classmethod
    def from_settings(cls, cfg=None, transport: Optional[ChatTransport] = None) -> "GigaChatModel":
        """按配置构造模型；未提供 transport 时按配置创建 GigaChatClient。"""

        cfg = cfg or settings
        return cls(
            transport or create_transport(cfg),
            ChatOptions(model=cfg.default_model, temperature=cfg.default_temperature),
            make_system_prompt_first=cfg.make_system_prompt_first,
            max_tool_round_trips=cfg.max_tool_round_trips,
            upload_max_workers=cfg.upload_max_workers,
        )

    @property
    def default_options(self) -> ChatOptions:
        # 不可变值，直接返回即可
        return self._default_options

    # ---- 阻塞调用 ----

    def call(self, messages: Sequence[Message], options: Optional[ChatOptions] = None) -> ChatResponse:
        """执行一次完整的对话调用（含工具调用循环）。

        工具抛出的异常与传输层异常都原样向上传播。
        """

        start_time = time.time()
        ctx = self._prepare(messages, options)
        conversation: List[Message] = list(ctx.messages)
        usage = UsageAccumulator()
        round_trip = 0

        while True:
            round_trip = self._next_round_trip(round_trip, ctx)
            request = self._mapper.build_request(conversation, ctx.options, ctx.registry)
            self._log(
                logging.INFO,
                "Calling GigaChat",
                ctx.log_ctx,
                round_trip=round_trip,
                message_count=len(request.messages),
                function_count=len(request.functions),
            )
            response = self._transport.chat_completion(request, ctx.headers)
            if response is None or not response.choices:
                self._log(logging.WARNING, "Empty response from GigaChat", ctx.log_ctx, round_trip=round_trip)
                if response is not None:
                    usage.add(response.usage)
                return self._envelope([], response, usage, conversation, ctx)
            usage.add(response.usage)

            top = response.choices[0]
            message = to_message(top.body)
            if FinishReason.from_wire(top.finish_reason) is FinishReason.TOOL_CALL and message.has_tool_calls:
                if not ctx.options.tool_execution_enabled:
                    self._log(logging.INFO, "Returning tool call to caller", ctx.log_ctx, round_trip=round_trip)
                    return self._envelope(self._generations(response), response, usage, conversation, ctx)
                turn = self._run_tools(message, ctx)
                conversation.extend(turn.messages)
                if turn.is_terminal:
                    return self._envelope(self._terminal_generations(turn), response, usage, conversation, ctx)
                continue

            self._log(
                logging.INFO,
                "Completed chat call",
                ctx.log_ctx,
                round_trips=round_trip,
                elapsed_seconds=round(time.time() - start_time, 2),
                total_tokens=usage.total.total_tokens,
            )
            return self._envelope(self._generations(response), response, usage, conversation, ctx)

    # ---- 流式调用 ----

    def stream(self, messages: Sequence[Message], options: Optional[ChatOptions] = None) -> Iterator[ChatResponse]:
        """流式对话调用。

        参数校验与附件上传在调用时立即完成；远程流式请求在迭代时才发起。
        """

        ctx = self._prepare(messages, options)
        return self._stream_round_trips(ctx)

    def _stream_round_trips(self, ctx: _CallContext) -> Iterator[ChatResponse]:
        conversation: List[Message] = list(ctx.messages)
        usage = UsageAccumulator()
        round_trip = 0

        while True:
            round_trip = self._next_round_trip(round_trip, ctx)
            request = self._mapper.build_request(conversation, ctx.options, ctx.registry, stream=True)
            self._log(logging.INFO, "Opening GigaChat stream", ctx.log_ctx, round_trip=round_trip)
            upstream = self._transport.chat_completion_stream(request, ctx.headers)
            assembler = StreamAssembler()
            tool_message: Optional[Message] = None
            last_chunk: Optional[CompletionResponse] = None
            try:
                for chunk in upstream:
                    last_chunk = chunk
                    usage.add(chunk.usage)
                    step = assembler.accept(chunk)
                    for item in step.forward:
                        yield self._envelope(self._generations(item), item, usage, conversation, ctx)
                    if step.tool_turn is not None:
                        tool_message = step.tool_turn
                        break
                if tool_message is None:
                    for item in assembler.drain():
                        yield self._envelope(self._generations(item), item, usage, conversation, ctx)
            finally:
                _close(upstream)

            if tool_message is None:
                self._log(logging.INFO, "Stream completed", ctx.log_ctx, round_trips=round_trip)
                return
            if not ctx.options.tool_execution_enabled:
                generation = Generation(index=0, message=tool_message, finish_reason=FinishReason.TOOL_CALL.value)
                yield self._envelope([generation], last_chunk, usage, conversation, ctx)
                return
            turn = self._run_tools(tool_message, ctx)
            conversation.extend(turn.messages)
            if turn.is_terminal:
                yield self._envelope(self._terminal_generations(turn), last_chunk, usage, conversation, ctx)
                return

    # ---- 结构化结果 ----

    def call_entity(
        self,
        messages: Sequence[Message],
        target_type: Type[T],
        options: Optional[ChatOptions] = None,
    ) -> T:
        """调用模型并把回答转换为 target_type。

        - 基本类型、枚举和数组直接按纯文本回答转换。
        - 其余类型生成 schema。合并后的参数开启了 structured_output_native
          （例如 VIRTUAL_FUNCTION_STRUCTURED_OUTPUT 预设）时，经结构化输出
          虚拟函数获取 JSON 回答；否则把格式要求追加到最后一条 user 消息，
          按文本回答解析 JSON。
        """

        schema = self._schema_context.schema_for_type(target_type)
        if schema is None:
            response = self.call(messages, options)
            return self._schema_context.validate_text(response.text, target_type)
        if not merge_options(self._default_options, options).structured_output_native:
            response = self.call(structured.with_format_instructions(messages, schema), options)
            return self._schema_context.validate_json(structured.strip_code_fence(response.text), target_type)
        native = ChatOptions(structured_output_native=True, output_schema=schema)
        response = self.call(messages, merge_options(options or ChatOptions(), native))
        return self._schema_context.validate_json(response.text, target_type)

    # ---- 辅助方法 ----

    def _prepare(self, messages: Sequence[Message], options: Optional[ChatOptions]) -> _CallContext:
        merged = merge_options(self._default_options, options)
        validate_messages(messages)

        tools = list(merged.tools or ())
        if merged.structured_output_enabled:
            tools.append(structured.StructuredOutputTool(merged.output_schema))
        registry = ToolRegistry(tools)

        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}", "model": merged.model}
        resolved = self._attachments.resolve(messages)
        if resolved.uploaded_count:
            self._log(logging.INFO, "Attachments resolved", log_ctx, uploaded=resolved.uploaded_count)
        return _CallContext(
            options=merged,
            registry=registry,
            messages=resolved.messages,
            media_ids=resolved.media_ids,
            log_ctx=log_ctx,
        )

    def _next_round_trip(self, round_trip: int, ctx: _CallContext) -> int:
        limit = self._max_tool_round_trips
        if limit is not None and round_trip >= limit:
            self._log(logging.ERROR, "Tool round trip limit reached", ctx.log_ctx, limit=limit)
            raise ToolLoopLimitError(
                code="TOOL_LOOP_LIMIT",
                message=f"Exceeded {limit} round trips with the model",
                limit=limit,
            )
        return round_trip + 1

    def _run_tools(self, message: Message, ctx: _CallContext) -> ToolTurn:
        self._log(
            logging.INFO,
            "Executing tool calls",
            ctx.log_ctx,
            tool_names=[call.name for call in message.tool_calls],
        )
        return ToolExecutor(ctx.registry).run_turn(message)

    @staticmethod
    def _generations(response: CompletionResponse) -> List[Generation]:
        return [
            Generation(
                index=choice.index,
                message=to_message(choice.body),
                finish_reason=_finish_reason(choice.finish_reason),
            )
            for choice in response.choices
        ]

    @staticmethod
    def _terminal_generations(turn: ToolTurn) -> List[Generation]:
        stop = FinishReason.STOP.value
        if turn.structured_content is not None:
            return [Generation(index=0, message=Message.assistant(turn.structured_content), finish_reason=stop)]
        results = [m for m in turn.messages if m.role is Role.TOOL]
        return [
            Generation(index=i, message=Message.assistant(m.content), finish_reason=stop)
            for i, m in enumerate(results)
        ]

    @staticmethod
    def _envelope(
        generations: List[Generation],
        response: Optional[CompletionResponse],
        usage: UsageAccumulator,
        conversation: Sequence[Message],
        ctx: _CallContext,
    ) -> ChatResponse:
        metadata = build_metadata(
            response_id=response.id if response is not None else None,
            model=(response.model if response is not None else None) or ctx.options.model,
            usage=usage.total,
            conversation=conversation,
            media_ids=ctx.media_ids,
        )
        return ChatResponse(generations=generations, metadata=metadata)

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})


def _finish_reason(raw: Optional[str]) -> Optional[str]:
    reason = FinishReason.from_wire(raw)
    return None if reason is FinishReason.NONE else reason.value


def _close(upstream: Iterator[CompletionResponse]) -> None:
    close = getattr(upstream, "close", None)
    if close is not None:
        close()
