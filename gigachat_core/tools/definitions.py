"""工具数据结构定义。

这些 dataclass 描述了“函数调用”的 schema，既用于：
- 将可用工具列表暴露给模型（ToolDescriptor）。
- 在编排器中保存和执行模型触发的工具调用（ToolCallRequest / ToolCallResult）。

参数 schema 与参数本身都以 JSON 文本保存，到线上格式的转换由
domain.completion 负责。
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class FewShotExample:
    """工具调用示例：用户请求与对应的调用参数。"""

    request: str
    params: Dict[str, Any]


@dataclass(frozen=True)
class ToolDescriptor:
    """一个可供模型调用的工具描述。

    - name: 工具名，在一次请求内唯一。
    - description: 给模型看的说明文字。
    - parameters_schema: 参数的 JSON Schema 文本。
    - return_schema: 可选的返回值 JSON Schema 文本。
    - few_shot_examples: 可选的调用示例，帮助模型选择工具并填写参数。
    """

    name: str
    description: str
    parameters_schema: str
    return_schema: Optional[str] = None
    few_shot_examples: Tuple[FewShotExample, ...] = ()


@dataclass(frozen=True)
class ToolCallRequest:
    """模型发起的一次工具调用请求。

    id 对应 GigaChat 的 functions_state_id，用于把结果关联回这次调用。
    arguments 为序列化后的 JSON 文本，可能为 None（模型未给出参数）。
    """

    id: Optional[str]
    name: str
    arguments: Optional[str]


@dataclass(frozen=True)
class ToolCallResult:
    """工具执行结果（序列化后的文本）。"""

    call_id: Optional[str]
    name: str
    content: str
