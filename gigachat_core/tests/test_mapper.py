import json

from gigachat_core.chat.mapper import MessageMapper, to_message
from gigachat_core.chat.options import ChatOptions, FunctionCallMode
from gigachat_core.domain.completion import CompletionMessage, FunctionCall
from gigachat_core.domain.models import Media, Message, Role
from gigachat_core.tools.definitions import ToolCallRequest, ToolCallResult
from gigachat_core.tools.executor import ToolRegistry, function_tool
from gigachat_core.tools.structured import STRUCTURED_OUTPUT_FUNCTION_NAME, StructuredOutputTool


def get_weather(city: str) -> str:
    """Returns current weather for a city."""
    return "sunny"


def test_system_message_moved_first_when_enabled():
    messages = [Message.user("u1"), Message.assistant("a1"), Message.system("sys"), Message.user("u2")]
    wire = MessageMapper(make_system_prompt_first=True).to_wire(messages)
    assert [m.role for m in wire] == ["system", "user", "assistant", "user"]
    assert [m.content for m in wire] == ["sys", "u1", "a1", "u2"]


def test_system_message_position_kept_when_disabled():
    messages = [Message.user("u1"), Message.system("sys")]
    wire = MessageMapper(make_system_prompt_first=False).to_wire(messages)
    assert [m.role for m in wire] == ["user", "system"]


def test_tool_call_and_result_mapping():
    call = ToolCallRequest(id="state-1", name="get_weather", arguments='{"city": "Moscow"}')
    messages = [
        Message.user("weather?"),
        Message.assistant("", (call,)),
        Message.tool_result(ToolCallResult(call_id="state-1", name="get_weather", content='"sunny"')),
    ]
    wire = MessageMapper().to_wire(messages)

    assistant = wire[1]
    assert assistant.role == "assistant"
    assert assistant.content == ""
    assert assistant.function_call.name == "get_weather"
    assert assistant.functions_state_id == "state-1"
    assert assistant.to_payload()["function_call"]["arguments"] == {"city": "Moscow"}

    tool = wire[2]
    assert tool.role == "function"
    assert tool.name == "get_weather"
    assert tool.content == '"sunny"'


def test_user_attachments_mapped_to_ids():
    media = Media(data=b"img", mime_type="image/png", id="file-9")
    wire = MessageMapper().to_wire([Message.user("look", (media,))])
    assert wire[0].attachments == ("file-9",)
    assert wire[0].to_payload()["attachments"] == ["file-9"]


def test_build_request_with_tools_sets_auto():
    registry = ToolRegistry([function_tool(get_weather)])
    request = MessageMapper().build_request([Message.user("hi")], ChatOptions(model="GigaChat"), registry)
    payload = request.to_payload()
    assert payload["model"] == "GigaChat"
    assert payload["function_call"] == "auto"
    assert payload["functions"][0]["name"] == "get_weather"
    assert payload["functions"][0]["description"] == "Returns current weather for a city."
    assert payload["functions"][0]["parameters"]["properties"]["city"]["type"] == "string"


def test_build_request_without_tools_omits_functions():
    request = MessageMapper().build_request([Message.user("hi")], ChatOptions(model="GigaChat"), ToolRegistry())
    payload = request.to_payload()
    assert "functions" not in payload
    assert "function_call" not in payload


def test_build_request_appends_structured_output_function_last():
    schema = json.dumps({"type": "object", "properties": {"answer": {"type": "string"}}})
    options = ChatOptions(model="GigaChat", structured_output_native=True, output_schema=schema)
    registry = ToolRegistry([function_tool(get_weather), StructuredOutputTool(schema)])
    payload = MessageMapper().build_request([Message.user("hi")], options, registry).to_payload()
    names = [f["name"] for f in payload["functions"]]
    assert names == ["get_weather", STRUCTURED_OUTPUT_FUNCTION_NAME]
    assert payload["functions"][1]["parameters"] == json.loads(schema)
    assert payload["function_call"] == "auto"


def test_explicit_none_mode_wins():
    registry = ToolRegistry([function_tool(get_weather)])
    options = ChatOptions(model="GigaChat", function_call_mode=FunctionCallMode.NONE)
    payload = MessageMapper().build_request([Message.user("hi")], options, registry).to_payload()
    assert payload["function_call"] == "none"


def test_to_message_reads_function_call():
    body = CompletionMessage(
        role="assistant",
        content="",
        function_call=FunctionCall(name="get_weather", arguments='{"city": "Kazan"}'),
        functions_state_id="state-7",
    )
    message = to_message(body)
    assert message.role is Role.ASSISTANT
    assert message.has_tool_calls
    assert message.tool_calls[0].id == "state-7"
    assert message.tool_calls[0].arguments == '{"city": "Kazan"}'
