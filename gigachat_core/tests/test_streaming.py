import pytest

from conftest import FakeStream, FakeTransport, completion
from gigachat_core.chat.model import GigaChatModel
from gigachat_core.chat.options import ChatOptions
from gigachat_core.chat.streaming import StreamAssembler
from gigachat_core.domain.exceptions import ProtocolStateError
from gigachat_core.domain.models import Message
from gigachat_core.tools.executor import function_tool


def delta(content=None, finish_reason=None, role=None, function_call=None, state_id=None, index=0, usage=None):
    body = {}
    if role:
        body["role"] = role
    if content is not None:
        body["content"] = content
    if function_call is not None:
        body["function_call"] = function_call
    if state_id:
        body["functions_state_id"] = state_id
    data = {"id": "chunk", "model": "GigaChat", "choices": [{"index": index, "delta": body, "finish_reason": finish_reason}]}
    if usage:
        data["usage"] = usage
    return completion(data)


def get_weather(city: str) -> str:
    return "sunny"


def _model(transport):
    return GigaChatModel(transport, ChatOptions(model="GigaChat"))


def test_assembler_concatenates_content_per_index():
    assembler = StreamAssembler()
    first = assembler.accept(delta("Hello ", role="assistant"))
    second = assembler.accept(delta("World", finish_reason="stop"))
    assert len(first.forward) == 1 and len(second.forward) == 1
    assert assembler.message(0).content == "Hello World"
    assert assembler.message(1) is None


def test_assembler_holds_function_call_then_releases_on_stop():
    assembler = StreamAssembler()
    held = assembler.accept(delta(function_call={"name": "get_weather"}, role="assistant"))
    assert held.forward == () and held.tool_turn is None
    released = assembler.accept(delta("done", finish_reason="stop"))
    assert len(released.forward) == 2


def test_assembler_emits_tool_turn():
    assembler = StreamAssembler()
    assembler.accept(delta(function_call={"name": "get_weather", "arguments": {"city": "Moscow"}}, state_id="state-1"))
    step = assembler.accept(delta(finish_reason="function_call"))
    assert step.forward == ()
    call = step.tool_turn.tool_calls[0]
    assert call.id == "state-1"
    assert call.arguments == '{"city": "Moscow"}'


def test_stream_forwards_text_chunks():
    transport = FakeTransport(streams=[[delta("Hello ", role="assistant"), delta("World", finish_reason="stop")]])
    chunks = list(_model(transport).stream([Message.user("hi")]))
    assert "".join(c.text for c in chunks) == "Hello World"
    assert chunks[-1].result.finish_reason == "stop"
    assert chunks[0].result.finish_reason is None
    assert transport.stream_requests[0].stream is True


def test_stream_empty_terminal_fragment_keeps_text():
    fragments = [delta("Hello ", role="assistant"), delta("World"), delta("", finish_reason="stop")]
    transport = FakeTransport(streams=[fragments])
    chunks = list(_model(transport).stream([Message.user("hi")]))
    assert len(chunks) == 3
    assert "".join(c.text for c in chunks) == "Hello World"
    assert chunks[-1].text == ""
    assert chunks[-1].result.finish_reason == "stop"
    assert [c.result.finish_reason for c in chunks[:2]] == [None, None]


def test_stream_runs_tools_and_reopens_stream():
    first = FakeStream(
        [
            delta(role="assistant", function_call={"name": "get_weather", "arguments": {"city": "Moscow"}}, state_id="state-1"),
            delta(finish_reason="function_call"),
        ]
    )
    second = FakeStream(
        [
            delta("Sunny ", role="assistant"),
            delta("today", finish_reason="stop", usage={"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}),
        ]
    )
    transport = FakeTransport(streams=[first, second])
    options = ChatOptions(tools=(function_tool(get_weather),))

    chunks = list(_model(transport).stream([Message.user("weather?")], options))

    assert len(transport.stream_requests) == 2
    assert len(chunks) == 2
    assert "".join(c.text for c in chunks) == "Sunny today"
    assert first.closed
    reissued = transport.stream_requests[1].messages
    assert [m.role for m in reissued] == ["user", "assistant", "function"]
    assert reissued[2].content == '"sunny"'
    assert chunks[-1].metadata.usage.total_tokens == 5
    assert len(chunks[-1].metadata.internal_conversation_history) == 2


def test_stream_error_propagates_and_closes_upstream():
    upstream = FakeStream([delta("partial", role="assistant"), RuntimeError("connection reset")])
    transport = FakeTransport(streams=[upstream])
    received = []
    with pytest.raises(RuntimeError, match="connection reset"):
        for chunk in _model(transport).stream([Message.user("hi")]):
            received.append(chunk.text)
    assert received == ["partial"]
    assert upstream.closed


def test_stream_cancellation_closes_upstream():
    upstream = FakeStream([delta("a", role="assistant"), delta("b"), delta("c", finish_reason="stop")])
    transport = FakeTransport(streams=[upstream])
    stream = _model(transport).stream([Message.user("hi")])
    assert next(stream).text == "a"
    stream.close()
    assert upstream.closed
    assert len(transport.stream_requests) == 1


def test_stream_validation_happens_on_call():
    transport = FakeTransport()
    with pytest.raises(ProtocolStateError):
        _model(transport).stream([Message.system("a"), Message.system("b")])
    assert transport.stream_requests == []
