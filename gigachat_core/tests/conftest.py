import threading
from typing import Any, Dict, Iterator, List, Optional

from gigachat_core.domain.completion import CompletionRequest, CompletionResponse, UploadedFile


def completion(payload: Dict[str, Any]) -> CompletionResponse:
    return CompletionResponse.from_payload(payload)


def text_response(content: str, usage: Optional[Dict[str, int]] = None, finish_reason: str = "stop") -> CompletionResponse:
    data: Dict[str, Any] = {
        "id": "resp-1",
        "model": "GigaChat",
        "choices": [
            {"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": finish_reason}
        ],
    }
    if usage:
        data["usage"] = usage
    return completion(data)


def function_call_response(
    name: str,
    arguments: Any,
    state_id: str = "state-1",
    usage: Optional[Dict[str, int]] = None,
) -> CompletionResponse:
    data: Dict[str, Any] = {
        "id": "resp-fc",
        "model": "GigaChat",
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": "",
                    "function_call": {"name": name, "arguments": arguments},
                    "functions_state_id": state_id,
                },
                "finish_reason": "function_call",
            }
        ],
    }
    if usage:
        data["usage"] = usage
    return completion(data)


class FakeStream:
    """可迭代、可关闭的上游流，记录是否被关闭。"""

    def __init__(self, chunks: List[Any]):
        self._chunks = list(chunks)
        self.closed = False

    def __iter__(self) -> Iterator[CompletionResponse]:
        for chunk in self._chunks:
            if self.closed:
                return
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk

    def close(self) -> None:
        self.closed = True


class FakeTransport:
    """按顺序返回预置响应的传输层，记录所有请求。"""

    def __init__(self, responses=(), streams=()):
        self.responses = list(responses)
        self.streams = [s if isinstance(s, FakeStream) else FakeStream(s) for s in streams]
        self.requests: List[CompletionRequest] = []
        self.stream_requests: List[CompletionRequest] = []
        self.headers: List[Optional[Dict[str, str]]] = []
        self.uploads: List[Any] = []
        self.opened_streams: List[FakeStream] = []
        self._lock = threading.Lock()

    def chat_completion(self, request, headers=None):
        self.requests.append(request)
        self.headers.append(dict(headers) if headers else None)
        return self.responses.pop(0)

    def chat_completion_stream(self, request, headers=None):
        self.stream_requests.append(request)
        self.headers.append(dict(headers) if headers else None)
        stream = self.streams.pop(0)
        self.opened_streams.append(stream)
        return stream

    def upload_file(self, media):
        with self._lock:
            self.uploads.append(media)
            file_id = f"file-{len(self.uploads)}"
        return UploadedFile(id=file_id, filename=media.name)
