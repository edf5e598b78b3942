import pytest

from gigachat_core.chat.options import (
    ChatOptions,
    FunctionCallMode,
    merge_options,
    resolve_function_call,
    validate_messages,
)
from gigachat_core.domain.completion import FunctionCallParam
from gigachat_core.domain.exceptions import ProtocolStateError, ToolCallMismatchError, ValidationError
from gigachat_core.domain.models import Message
from gigachat_core.tools.definitions import ToolCallRequest, ToolCallResult


def test_merge_options_overrides_only_set_fields():
    defaults = ChatOptions(model="GigaChat", temperature=0.2, max_tokens=100)
    merged = merge_options(defaults, ChatOptions(temperature=0.9))
    assert merged.model == "GigaChat"
    assert merged.temperature == 0.9
    assert merged.max_tokens == 100
    # 默认值本身不被修改
    assert defaults.temperature == 0.2


def test_merge_options_without_override_returns_defaults():
    defaults = ChatOptions(model="GigaChat-Pro")
    assert merge_options(defaults, None) is defaults


def test_structured_output_requires_non_blank_schema():
    assert not ChatOptions(structured_output_native=True).structured_output_enabled
    assert not ChatOptions(structured_output_native=True, output_schema="   ").structured_output_enabled
    assert ChatOptions(structured_output_native=True, output_schema='{"type":"object"}').structured_output_enabled


def test_tool_execution_enabled_by_default():
    assert ChatOptions().tool_execution_enabled
    assert not ChatOptions(internal_tool_execution_enabled=False).tool_execution_enabled


def test_resolve_function_call_directives():
    assert resolve_function_call(ChatOptions(), has_functions=False) is None
    assert resolve_function_call(ChatOptions(), has_functions=True) == "auto"
    assert resolve_function_call(ChatOptions(function_call_mode=FunctionCallMode.NONE), has_functions=True) == "none"

    param = FunctionCallParam(name="getWeather", partial_arguments={"city": "Moscow"})
    options = ChatOptions(function_call_mode=FunctionCallMode.CUSTOM_FUNCTION, function_call_param=param)
    assert resolve_function_call(options, has_functions=True) is param


def test_custom_function_mode_requires_param():
    with pytest.raises(ValidationError):
        resolve_function_call(ChatOptions(function_call_mode=FunctionCallMode.CUSTOM_FUNCTION), has_functions=True)


def test_validate_messages_rejects_second_system_message():
    messages = [Message.system("a"), Message.user("hi"), Message.system("b")]
    with pytest.raises(ProtocolStateError) as exc:
        validate_messages(messages)
    assert exc.value.message == "System prompt message must be the only one in the conversation"


def test_validate_messages_rejects_unmatched_tool_result():
    call = ToolCallRequest(id="call-1", name="weather", arguments="{}")
    ok = [Message.user("hi"), Message.assistant("", (call,)), Message.tool_result(ToolCallResult("call-1", "weather", "1"))]
    validate_messages(ok)

    bad = [Message.user("hi"), Message.tool_result(ToolCallResult("call-2", "weather", "1"))]
    with pytest.raises(ToolCallMismatchError):
        validate_messages(bad)
