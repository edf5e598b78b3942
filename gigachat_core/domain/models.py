"""统一的对话与结果数据模型。

本模块定义了编排层内部共享的标准数据结构：

- Message: 一条对话消息，role 作为判别字段（system/user/assistant/tool）。
- Media: 用户消息附带的二进制附件，上传后获得远端 id。
- FinishReason: 模型结束本轮生成的原因，驱动工具调用循环的终止。
- ChatResponse: 编排完成后返回给调用方的统一响应。

所有模型都是不可变的：每个处理阶段基于旧值构造新值，而不是原地修改。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    # 仅在类型检查时导入，避免运行时循环依赖
    from gigachat_core.tools.definitions import ToolCallRequest, ToolCallResult


class Role(str, Enum):
    """消息角色。TOOL 对应线上的 function 角色。"""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FinishReason(str, Enum):
    """模型结束本轮生成的原因。"""

    NONE = "none"
    TOOL_CALL = "tool_call"
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    ERROR = "error"

    @classmethod
    def from_wire(cls, raw: Optional[str]) -> "FinishReason":
        """把线上的 finish_reason 字符串映射为枚举值。

        GigaChat 使用 function_call / blacklist，这里同时兼容
        OpenAI 风格的 tool_calls / content_filter。未知值按 NONE 处理。
        """

        if not raw:
            return cls.NONE
        return _WIRE_FINISH_REASONS.get(raw.lower(), cls.NONE)

    @property
    def is_terminal(self) -> bool:
        return self in (FinishReason.STOP, FinishReason.LENGTH, FinishReason.CONTENT_FILTER, FinishReason.ERROR)


_WIRE_FINISH_REASONS = {
    "function_call": FinishReason.TOOL_CALL,
    "tool_call": FinishReason.TOOL_CALL,
    "tool_calls": FinishReason.TOOL_CALL,
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "blacklist": FinishReason.CONTENT_FILTER,
    "content_filter": FinishReason.CONTENT_FILTER,
    "error": FinishReason.ERROR,
}


@dataclass(frozen=True)
class Media:
    """用户消息附带的二进制附件。

    - id: 远端文件 id，为 None 表示尚未上传。
    - data: 文件内容。
    - mime_type: MIME 类型，如 image/png。
    - name: 上传时使用的文件名。
    """

    data: bytes
    mime_type: str
    id: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class Message:
    """一条对话消息，既可用于请求，也可用于响应。

    - role: 消息角色，决定下列可选字段是否有意义。
    - content: 纯文本内容。
    - media: 仅 user 消息使用的附件列表。
    - tool_calls: 仅 assistant 消息使用，模型发起的工具调用。
    - tool_call_id / tool_name: 仅 tool 消息使用，关联某一次工具调用。
    """

    role: Role
    content: str = ""
    media: Tuple[Media, ...] = ()
    tool_calls: Tuple["ToolCallRequest", ...] = ()
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str, media: Tuple[Media, ...] = ()) -> "Message":
        return cls(role=Role.USER, content=content, media=tuple(media))

    @classmethod
    def assistant(cls, content: str = "", tool_calls: Tuple["ToolCallRequest", ...] = ()) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tuple(tool_calls))

    @classmethod
    def tool_result(cls, result: "ToolCallResult") -> "Message":
        return cls(
            role=Role.TOOL,
            content=result.content,
            tool_call_id=result.call_id,
            tool_name=result.name,
        )

    @property
    def has_tool_calls(self) -> bool:
        return self.role is Role.ASSISTANT and bool(self.tool_calls)


@dataclass(frozen=True)
class Usage:
    """token 统计信息，缺失时为 0。"""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass(frozen=True)
class Generation:
    """单个候选回答。finish_reason 为 FinishReason 的字符串值，流式中间片段为 None。"""

    index: int
    message: Message
    finish_reason: Optional[str] = None

    @property
    def text(self) -> str:
        return self.message.content


@dataclass(frozen=True)
class ResponseMetadata:
    """响应元数据。

    - usage: 整个调用（包括所有工具往返）累计的 token 统计。
    - internal_conversation_history: 本次调用涉及的工具调用/工具结果消息。
    - uploaded_media_ids: 请求中所有附件的远端 id，没有附件时为 None。
    """

    id: Optional[str] = None
    model: Optional[str] = None
    usage: Usage = field(default_factory=Usage)
    internal_conversation_history: Tuple[Message, ...] = ()
    uploaded_media_ids: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class ChatResponse:
    """一次对话调用（或一个流式片段）对调用方的统一结果。"""

    generations: List[Generation]
    metadata: ResponseMetadata = field(default_factory=ResponseMetadata)

    @property
    def result(self) -> Optional[Generation]:
        return self.generations[0] if self.generations else None

    @property
    def text(self) -> str:
        return self.result.text if self.result else ""
