"""对外 API 服务模块。

提供简化的函数接口供上层应用调用。
"""

from typing import Any, Dict, Iterator, List, Optional, Sequence, Type, TypeVar

from gigachat_core.chat.model import GigaChatModel
from gigachat_core.chat.options import VIRTUAL_FUNCTION_STRUCTURED_OUTPUT, ChatOptions, merge_options
from gigachat_core.config.settings import settings
from gigachat_core.domain.models import ChatResponse, Message
from gigachat_core.infrastructure.logging.logger import logger

T = TypeVar("T")

_model: Optional[GigaChatModel] = None


def get_default_model() -> GigaChatModel:
    """获取按配置构造的默认 GigaChatModel 实例（单例）。"""
    global _model
    if _model is None:
        _model = GigaChatModel.from_settings(settings)
    return _model


def _build_messages(user_input: str, system_prompt: Optional[str]) -> List[Message]:
    messages = [Message.user(user_input)]
    if system_prompt:
        messages.insert(0, Message.system(system_prompt))
    return messages


def run_chat(
    user_input: str,
    system_prompt: Optional[str] = None,
    tools: Sequence[Any] = (),
    session_id: Optional[str] = None,
    options: Optional[ChatOptions] = None,
) -> Dict[str, Any]:
    """运行一次对话。

    Args:
        user_input: 用户输入内容
        system_prompt: 系统提示词（可选）
        tools: 本次可用的工具回调（见 tools.executor.function_tool）
        session_id: 会话 id（可选），作为 X-Session-ID 请求头透传
        options: 其他对话参数（可选）

    Returns:
        包含回答文本、结束原因、使用统计与工具调用次数的字典

    Raises:
        各种 domain.exceptions 中定义的异常，以及工具自身抛出的异常
    """
    overrides = ChatOptions(
        tools=tuple(tools) or None,
        http_headers={"X-Session-ID": session_id} if session_id else None,
    )
    merged = merge_options(options or ChatOptions(), overrides)
    try:
        response = get_default_model().call(_build_messages(user_input, system_prompt), merged)
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {"session_id": session_id, "error": str(e)}})
        raise
    return _to_dict(response)


def stream_chat(
    user_input: str,
    system_prompt: Optional[str] = None,
    options: Optional[ChatOptions] = None,
) -> Iterator[str]:
    """流式对话，逐段产出回答文本。"""
    for chunk in get_default_model().stream(_build_messages(user_input, system_prompt), options):
        if chunk.text:
            yield chunk.text


def run_structured(
    user_input: str,
    target_type: Type[T],
    system_prompt: Optional[str] = None,
    options: Optional[ChatOptions] = None,
) -> T:
    """运行一次对话并把回答转换为 target_type（pydantic 模型、dataclass 或基本类型）。

    默认经结构化输出虚拟函数取回答；options 中 structured_output_native=False 时改用文本格式要求。
    """
    merged = merge_options(VIRTUAL_FUNCTION_STRUCTURED_OUTPUT, options)
    return get_default_model().call_entity(_build_messages(user_input, system_prompt), target_type, merged)


def _to_dict(response: ChatResponse) -> Dict[str, Any]:
    usage = response.metadata.usage
    result = response.result
    return {
        "id": response.metadata.id,
        "model": response.metadata.model,
        "content": response.text,
        "finish_reason": result.finish_reason if result else None,
        "usage": {
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
        },
        "tool_messages": len(response.metadata.internal_conversation_history),
    }
