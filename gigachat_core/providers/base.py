"""传输层抽象接口。

编排层不直接依赖 HTTP 细节，而是依赖此协议：

- chat_completion: 一次阻塞调用，返回完整响应（响应体为空时返回 None）。
- chat_completion_stream: 一次流式调用，逐个产出响应片段。
- upload_file: 上传附件，返回带远端 id 的上传结果。

重试、鉴权与 token 刷新都属于传输层实现的职责，编排层只透传其异常。
"""

from typing import Iterator, Mapping, Optional, Protocol

from gigachat_core.domain.completion import CompletionRequest, CompletionResponse, UploadedFile
from gigachat_core.domain.models import Media


class ChatTransport(Protocol):
    """GigaChat 传输客户端协议。"""

    def chat_completion(
        self,
        request: CompletionRequest,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Optional[CompletionResponse]:
        ...

    def chat_completion_stream(
        self,
        request: CompletionRequest,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Iterator[CompletionResponse]:
        """执行一次流式调用，逐步产出片段。调用方提前关闭迭代器即中止请求。"""

        ...

    def upload_file(self, media: Media) -> UploadedFile:
        ...
