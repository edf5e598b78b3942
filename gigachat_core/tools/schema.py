"""JSON Schema 生成与 JSON 序列化上下文。

SchemaContext 是显式传给各组件的值对象（而不是进程级单例），
负责：
- 为目标类型 / 函数签名生成 JSON Schema（基于 pydantic）。
- 工具返回值的 JSON 序列化，以及结构化输出的反序列化。

基本类型、枚举和数组类型不生成 schema：对这些类型，模型直接
以纯文本作答更可靠，调用方据此回退到文本模式。
"""

import inspect
import json
import logging
import typing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

import pydantic_core
from pydantic import ConfigDict, TypeAdapter, create_model

from gigachat_core.infrastructure.logging.logger import log_event

_SIMPLE_TYPES = (str, bytes, int, float, bool)
_ARRAY_ORIGINS = (list, tuple, set, frozenset)


@dataclass(frozen=True)
class SchemaContext:
    """Schema 生成与序列化上下文。

    - by_alias: 生成 schema / 序列化时是否使用字段别名。
    - ensure_ascii: 序列化 JSON 时是否转义非 ASCII 字符。
    - schema_overrides: 类型到 schema 文本的手工映射，优先于自动生成。
    """

    by_alias: bool = True
    ensure_ascii: bool = False
    schema_overrides: Dict[Any, str] = field(default_factory=dict)

    # ---- Schema 生成 ----

    def schema_for_type(self, target_type: Any) -> Optional[str]:
        """为目标类型生成 JSON Schema 文本；基本类型/枚举/数组返回 None。"""

        if target_type in self.schema_overrides:
            return self.schema_overrides[target_type]
        if target_type is None or target_type is inspect.Signature.empty or is_schemaless_type(target_type):
            log_event(logging.INFO, "Skipping schema generation", target_type=repr(target_type))
            return None
        schema = TypeAdapter(target_type).json_schema(by_alias=self.by_alias)
        return self._dump(schema)

    def schema_for_callable(self, func: Callable[..., Any]) -> str:
        """根据函数签名生成参数 schema（object 类型）。"""

        model = self.arguments_model(func)
        return self._dump(model.model_json_schema(by_alias=self.by_alias))

    def arguments_model(self, func: Callable[..., Any]):
        """基于函数签名构造 pydantic 模型，用于 schema 与参数校验。"""

        signature = inspect.signature(func)
        hints = typing.get_type_hints(func)
        fields: Dict[str, Any] = {}
        for name, param in signature.parameters.items():
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            annotation = hints.get(name, Any)
            default = ... if param.default is param.empty else param.default
            fields[name] = (annotation, default)
        return create_model(
            f"{func.__name__}_arguments",
            __config__=ConfigDict(extra="ignore"),
            **fields,
        )

    # ---- 序列化 ----

    def to_json(self, value: Any) -> str:
        """把任意对象序列化为 JSON 文本（支持 dataclass / pydantic 模型）。"""

        try:
            return json.dumps(value, ensure_ascii=self.ensure_ascii)
        except TypeError:
            return pydantic_core.to_json(value, by_alias=self.by_alias).decode("utf-8")

    def to_json_if_needed(self, value: Any) -> str:
        """已经是合法 JSON 的字符串原样返回，其余值序列化为 JSON。"""

        if isinstance(value, str) and is_valid_json(value):
            return value
        return self.to_json(value)

    def validate_json(self, text: str, target_type: Any) -> Any:
        """把 JSON 文本校验并转换为目标类型。"""

        return TypeAdapter(target_type).validate_json(text)

    def validate_text(self, text: str, target_type: Any) -> Any:
        """把纯文本回答转换为无 schema 的目标类型。

        数组按 JSON 解析；数字、布尔、枚举按 pydantic 宽松模式从字符串转换。
        """

        if target_type is str:
            return text
        origin = typing.get_origin(target_type)
        if target_type in _ARRAY_ORIGINS or origin in _ARRAY_ORIGINS:
            return TypeAdapter(target_type).validate_json(text)
        return TypeAdapter(target_type).validate_python(text.strip())

    def _dump(self, schema: Dict[str, Any]) -> str:
        return json.dumps(schema, ensure_ascii=self.ensure_ascii)


def is_schemaless_type(target_type: Any) -> bool:
    """基本类型、枚举和数组类型不需要生成 schema。"""

    if target_type in _SIMPLE_TYPES:
        return True
    if inspect.isclass(target_type) and issubclass(target_type, Enum):
        return True
    origin = typing.get_origin(target_type)
    if target_type in _ARRAY_ORIGINS or origin in _ARRAY_ORIGINS:
        return True
    return False


def is_valid_json(text: str) -> bool:
    try:
        json.loads(text)
    except json.JSONDecodeError:
        return False
    return True


DEFAULT_SCHEMA_CONTEXT = SchemaContext()
