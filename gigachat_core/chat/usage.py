"""token 统计累计与响应元数据构造。"""

from typing import Optional, Sequence, Tuple

from gigachat_core.domain.models import Message, ResponseMetadata, Role, Usage


class UsageAccumulator:
    """跨工具往返累计 token 统计；响应未返回 usage 时按 0 计。"""

    def __init__(self):
        self._usage = Usage()

    def add(self, usage: Optional[Usage]) -> Usage:
        if usage is not None:
            self._usage = self._usage + usage
        return self._usage

    @property
    def total(self) -> Usage:
        return self._usage


def conversation_history(conversation: Sequence[Message]) -> Tuple[Message, ...]:
    """会话中的工具调用消息与工具结果消息，保持原有顺序。"""

    return tuple(m for m in conversation if m.has_tool_calls or m.role is Role.TOOL)


def build_metadata(
    response_id: Optional[str],
    model: Optional[str],
    usage: Usage,
    conversation: Sequence[Message],
    media_ids: Optional[Tuple[str, ...]],
) -> ResponseMetadata:
    return ResponseMetadata(
        id=response_id,
        model=model,
        usage=usage,
        internal_conversation_history=conversation_history(conversation),
        uploaded_media_ids=media_ids,
    )
