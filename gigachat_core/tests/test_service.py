from pydantic import BaseModel

from conftest import FakeTransport, completion, function_call_response, text_response
from gigachat_core.api import service
from gigachat_core.chat.model import GigaChatModel
from gigachat_core.chat.options import ChatOptions
from gigachat_core.tools.executor import function_tool
from gigachat_core.tools.structured import STRUCTURED_OUTPUT_FUNCTION_NAME


class Answer(BaseModel):
    text: str


def _install(monkeypatch, transport):
    model = GigaChatModel(transport, ChatOptions(model="GigaChat"))
    monkeypatch.setattr(service, "_model", model)
    return model


def test_run_chat_passes_session_header_and_tools(monkeypatch):
    def lookup(key: str) -> str:
        return key.upper()

    transport = FakeTransport(
        [
            function_call_response("lookup", {"key": "abc"}),
            text_response("ABC", usage={"prompt_tokens": 2, "completion_tokens": 1, "total_tokens": 3}),
        ]
    )
    _install(monkeypatch, transport)

    result = service.run_chat("find abc", system_prompt="be brief", tools=[function_tool(lookup)], session_id="s-9")

    assert result["content"] == "ABC"
    assert result["finish_reason"] == "stop"
    assert result["usage"]["total_tokens"] == 3
    assert result["tool_messages"] == 2
    assert transport.headers == [{"X-Session-ID": "s-9"}, {"X-Session-ID": "s-9"}]
    assert transport.requests[0].messages[0].role == "system"


def test_run_structured(monkeypatch):
    transport = FakeTransport([function_call_response(STRUCTURED_OUTPUT_FUNCTION_NAME, {"text": "hi"})])
    _install(monkeypatch, transport)
    assert service.run_structured("say hi", Answer) == Answer(text="hi")


def test_stream_chat_yields_text(monkeypatch):
    chunks = [
        completion({"choices": [{"index": 0, "delta": {"role": "assistant", "content": "a"}}]}),
        completion({"choices": [{"index": 0, "delta": {"content": "b"}, "finish_reason": "stop"}]}),
    ]
    _install(monkeypatch, FakeTransport(streams=[chunks]))
    assert list(service.stream_chat("hi")) == ["a", "b"]
