"""GigaChat Core 顶层包。

该包提供 GigaChat 对话模型的编排层实现，
包括配置加载、领域模型、传输层适配、工具调用循环、
结构化输出（虚拟函数）与流式响应拼装等能力。
"""

from gigachat_core.chat.model import GigaChatModel
from gigachat_core.chat.options import ChatOptions, FunctionCallMode
from gigachat_core.domain.models import ChatResponse, Media, Message
from gigachat_core.tools.executor import function_tool

__all__ = [
    "ChatOptions",
    "ChatResponse",
    "FunctionCallMode",
    "GigaChatModel",
    "Media",
    "Message",
    "function_tool",
]
