"""流式片段的拼装。

每个流式调用对应一个 StreamAssembler：

- 按候选 index 维护累加器：role 只记录一次，content 与函数参数按到达顺序拼接。
- 普通片段逐个转发给调用方。
- 一旦某个候选出现 function_call 片段，本轮后续片段先暂存：
  本轮以工具调用结束时丢弃暂存片段并交出拼装好的工具调用消息；
  以其他原因结束时按原顺序放行暂存片段。
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from gigachat_core.domain.completion import CompletionChoice, CompletionResponse
from gigachat_core.domain.models import FinishReason, Message
from gigachat_core.tools.definitions import ToolCallRequest


@dataclass
class MessageAccumulator:
    index: int
    role: Optional[str] = None
    content_parts: List[str] = field(default_factory=list)
    function_name: Optional[str] = None
    argument_parts: List[str] = field(default_factory=list)
    functions_state_id: Optional[str] = None
    finish_reason: FinishReason = FinishReason.NONE

    def apply(self, choice: CompletionChoice) -> None:
        body = choice.body
        if body is not None:
            if self.role is None and body.role:
                self.role = body.role
            if body.content:
                self.content_parts.append(body.content)
            if body.function_call is not None:
                if body.function_call.name and not self.function_name:
                    self.function_name = body.function_call.name
                if body.function_call.arguments:
                    self.argument_parts.append(body.function_call.arguments)
            if body.functions_state_id:
                self.functions_state_id = body.functions_state_id
        reason = FinishReason.from_wire(choice.finish_reason)
        if reason is not FinishReason.NONE:
            self.finish_reason = reason

    @property
    def has_tool_call(self) -> bool:
        return self.function_name is not None

    def to_message(self) -> Message:
        tool_calls: Tuple[ToolCallRequest, ...] = ()
        if self.function_name:
            tool_calls = (
                ToolCallRequest(
                    id=self.functions_state_id,
                    name=self.function_name,
                    arguments="".join(self.argument_parts) if self.argument_parts else None,
                ),
            )
        return Message.assistant("".join(self.content_parts), tool_calls)


@dataclass(frozen=True)
class AssemblyStep:
    """处理一个片段后的动作：forward 为要转发的片段；tool_turn 非空表示本轮以工具调用结束。"""

    forward: Tuple[CompletionResponse, ...] = ()
    tool_turn: Optional[Message] = None


class StreamAssembler:
    def __init__(self):
        self._accumulators: Dict[int, MessageAccumulator] = {}
        self._held: List[CompletionResponse] = []
        self._holding = False

    def accept(self, chunk: CompletionResponse) -> AssemblyStep:
        tool_turn: Optional[Message] = None
        finished = False
        for choice in chunk.choices:
            acc = self._accumulators.get(choice.index)
            if acc is None:
                acc = self._accumulators[choice.index] = MessageAccumulator(index=choice.index)
            acc.apply(choice)
            if acc.has_tool_call:
                self._holding = True
            reason = FinishReason.from_wire(choice.finish_reason)
            if reason is FinishReason.TOOL_CALL and acc.has_tool_call and tool_turn is None:
                tool_turn = acc.to_message()
            elif reason.is_terminal:
                finished = True

        if tool_turn is not None:
            self._held.clear()
            self._holding = False
            return AssemblyStep(tool_turn=tool_turn)
        if not self._holding:
            return AssemblyStep(forward=(chunk,))
        self._held.append(chunk)
        if finished:
            return AssemblyStep(forward=self.drain())
        return AssemblyStep()

    def drain(self) -> Tuple[CompletionResponse, ...]:
        """放行全部暂存片段（上游结束时调用）。"""

        released = tuple(self._held)
        self._held.clear()
        self._holding = False
        return released

    def message(self, index: int = 0) -> Optional[Message]:
        """按 index 取拼装好的消息，未收到该候选时返回 None。"""

        acc = self._accumulators.get(index)
        return acc.to_message() if acc is not None else None
