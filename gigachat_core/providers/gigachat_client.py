"""GigaChat HTTP 传输客户端。

本模块负责：

1. 把 CompletionRequest 序列化为 GigaChat chat/completions 请求体。
2. 调用 HTTP 接口并把网络/API 异常转换为 domain.exceptions 中的业务异常。
3. 把响应 JSON（或 SSE 流中的每个 data 行）解析为 CompletionResponse。

鉴权只使用配置中的 access token（Authorization: Bearer <token>），
token 的获取与刷新不在这里处理；同样不做任何自动重试。
"""

import json
from typing import Any, Dict, Iterator, List, Mapping, Optional

import httpx

from gigachat_core.config.settings import settings
from gigachat_core.domain.completion import CompletionRequest, CompletionResponse, UploadedFile
from gigachat_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from gigachat_core.domain.models import Media


class GigaChatClient:
    """GigaChat 传输客户端实现（ChatTransport）。"""

    name = "gigachat"

    def __init__(self, cfg=settings):
        # cfg 里包含 base_url、access token、超时等配置
        self._settings = cfg

    # ---- 非流式 ----

    def chat_completion(
        self,
        request: CompletionRequest,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Optional[CompletionResponse]:
        payload = request.to_payload()
        try:
            with self._client() as client:
                resp = client.post(
                    f"{self._base_url()}/chat/completions",
                    json=payload,
                    headers=self._headers(headers),
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        self._raise_for_status(resp)
        if not resp.content:
            return None
        data = resp.json()
        if not data:
            return None
        return CompletionResponse.from_payload(data)

    # ---- 流式 ----

    def chat_completion_stream(
        self,
        request: CompletionRequest,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Iterator[CompletionResponse]:
        payload = request.to_payload()
        try:
            with self._client() as client:
                with client.stream(
                    "POST",
                    f"{self._base_url()}/chat/completions",
                    json=payload,
                    headers=self._headers(headers, accept="text/event-stream"),
                ) as resp:
                    if resp.status_code == 429:
                        raise RateLimitError(code="RATE_LIMIT", message="GigaChat rate limit")
                    if resp.status_code >= 400:
                        resp.read()
                        raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
                    for line in resp.iter_lines():
                        chunk = self._parse_stream_line(line)
                        if chunk is not None:
                            yield chunk
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))

    # ---- 文件与模型 ----

    def upload_file(self, media: Media) -> UploadedFile:
        filename = media.name or "attachment"
        try:
            with self._client() as client:
                resp = client.post(
                    f"{self._base_url()}/files",
                    files={"file": (filename, media.data, media.mime_type)},
                    data={"purpose": "general"},
                    headers=self._auth_headers(),
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        self._raise_for_status(resp)
        data = resp.json() or {}
        file_id = data.get("id")
        if not file_id:
            raise ApiError(
                code="UPLOAD_FAILED",
                message="Upload response has no file id",
                http_status=resp.status_code,
            )
        return UploadedFile(
            id=str(file_id),
            filename=data.get("filename"),
            size=data.get("bytes"),
            purpose=data.get("purpose"),
        )

    def list_models(self) -> List[str]:
        try:
            with self._client() as client:
                resp = client.get(f"{self._base_url()}/models", headers=self._auth_headers())
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        self._raise_for_status(resp)
        data = resp.json() or {}
        return [item.get("id") for item in data.get("data", []) if item.get("id")]

    # ---- 辅助方法 ----

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self._settings.http_timeout,
            verify=getattr(self._settings, "verify_ssl", True),
            trust_env=False,
        )

    def _base_url(self) -> str:
        return getattr(self._settings, "gigachat_base_url", None) or "https://gigachat.devices.sberbank.ru/api/v1"

    def _auth_headers(self) -> Dict[str, str]:
        token = getattr(self._settings, "gigachat_access_token", None)
        if not token:
            raise ValidationError(code="MISSING_ACCESS_TOKEN", message="GIGACHAT_ACCESS_TOKEN not set")
        return {"Authorization": f"Bearer {token}"}

    def _headers(self, extra: Optional[Mapping[str, str]], accept: str = "application/json") -> Dict[str, str]:
        headers = self._auth_headers()
        headers.update({"Content-Type": "application/json", "Accept": accept})
        if extra:
            headers.update(extra)
        return headers

    @staticmethod
    def _raise_for_status(resp: Any) -> None:
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="GigaChat rate limit")
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)

    @staticmethod
    def _parse_stream_line(line: str) -> Optional[CompletionResponse]:
        if not line:
            return None
        data_str = line
        if data_str.startswith("data:"):
            data_str = data_str[5:].strip()
        else:
            data_str = data_str.strip()
        if not data_str or data_str == "[DONE]":
            return None
        try:
            payload_chunk = json.loads(data_str)
        except json.JSONDecodeError:
            return None
        return CompletionResponse.from_payload(payload_chunk)
