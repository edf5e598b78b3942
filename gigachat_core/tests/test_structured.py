from gigachat_core.domain.completion import CompletionMessage, CompletionRequest, FunctionDescription
from gigachat_core.domain.models import Message, Role
from gigachat_core.tools import structured
from gigachat_core.tools.definitions import ToolCallRequest

SCHEMA = '{"type": "object", "properties": {"name": {"type": "string"}}}'


def _request(functions=()):
    return CompletionRequest(
        model="GigaChat",
        messages=(CompletionMessage(role="user", content="hi"),),
        functions=tuple(functions),
    )


def test_attach_is_noop_for_blank_schema():
    request = _request()
    assert structured.attach(request, None) is request
    assert structured.attach(request, "  ") is request


def test_attach_appends_virtual_function():
    existing = FunctionDescription(name="weather", description="w", parameters='{"type": "object"}')
    request = _request([existing])
    attached = structured.attach(request, SCHEMA)
    assert [f.name for f in attached.functions] == ["weather", structured.STRUCTURED_OUTPUT_FUNCTION_NAME]
    assert attached.functions[-1].description == structured.STRUCTURED_OUTPUT_FUNCTION_DESCRIPTION
    # 原请求不变
    assert len(request.functions) == 1


def test_extract_returns_empty_object_for_null_arguments():
    call = ToolCallRequest(id="s", name=structured.STRUCTURED_OUTPUT_FUNCTION_NAME, arguments=None)
    assert structured.extract_content(call) == "{}"


def test_is_terminal_and_extract():
    call = ToolCallRequest(id="s", name=structured.STRUCTURED_OUTPUT_FUNCTION_NAME, arguments='{"name": "Ivan"}')
    message = Message.assistant("", (call,))
    assert structured.is_terminal(message)
    assert structured.extract(message) == '{"name": "Ivan"}'
    assert not structured.is_terminal(Message.assistant("plain"))


def test_structured_output_tool_returns_arguments():
    tool = structured.StructuredOutputTool(SCHEMA)
    assert tool.kind == "structured_output"
    assert tool.descriptor.parameters_schema == SCHEMA
    assert tool.invoke('{"name": "Olga"}') == '{"name": "Olga"}'
    assert tool.invoke(None) == "{}"


def test_format_instructions_go_to_last_user_message():
    messages = [Message.user("first"), Message.assistant("ok"), Message.user("second"), Message.assistant("tail")]
    result = structured.with_format_instructions(messages, SCHEMA)
    assert result[0].content == "first"
    assert result[2].content.startswith("second\nYour response should be in JSON format.")
    assert SCHEMA in result[2].content
    assert result[3] is messages[3]
    assert messages[2].content == "second"


def test_format_instructions_without_user_message():
    result = structured.with_format_instructions([Message.system("sys")], SCHEMA)
    assert len(result) == 2
    assert result[1].role is Role.USER
    assert SCHEMA in result[1].content


def test_strip_code_fence():
    assert structured.strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert structured.strip_code_fence('  {"a": 1} ') == '{"a": 1}'
