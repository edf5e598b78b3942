"""附件上传。

user 消息中尚无远端 id 的附件会在构造请求前上传：每个附件上传一次，
不同附件之间并发执行，全部完成后才继续构造请求。已有 id 的附件原样透传。
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

from gigachat_core.domain.models import Media, Message, Role
from gigachat_core.infrastructure.logging.logger import log_event
from gigachat_core.providers.base import ChatTransport


@dataclass(frozen=True)
class ResolvedAttachments:
    """附件解析结果。

    - messages: 附件都已带上远端 id 的新消息序列。
    - media_ids: 请求中全部附件的 id（按出现顺序），没有附件时为 None。
    - uploaded_count: 本次实际上传的附件数。
    """

    messages: Tuple[Message, ...]
    media_ids: Optional[Tuple[str, ...]]
    uploaded_count: int = 0


class AttachmentResolver:
    def __init__(self, transport: ChatTransport, max_workers: int = 4):
        self._transport = transport
        self._max_workers = max(1, max_workers)

    def resolve(self, messages: Sequence[Message]) -> ResolvedAttachments:
        # 同一个 Media 对象出现多次也只上传一次
        pending: Dict[int, Media] = {}
        for message in messages:
            if message.role is not Role.USER:
                continue
            for media in message.media:
                if media.id is None:
                    pending.setdefault(id(media), media)

        uploaded = self._upload_all(pending)

        resolved: List[Message] = []
        media_ids: List[str] = []
        for message in messages:
            if message.role is not Role.USER or not message.media:
                resolved.append(message)
                continue
            media = tuple(m if m.id is not None else replace(m, id=uploaded[id(m)]) for m in message.media)
            media_ids.extend(m.id for m in media)
            resolved.append(replace(message, media=media))

        return ResolvedAttachments(
            messages=tuple(resolved),
            media_ids=tuple(media_ids) if media_ids else None,
            uploaded_count=len(uploaded),
        )

    def _upload_all(self, pending: Dict[int, Media]) -> Dict[int, str]:
        if not pending:
            return {}
        workers = min(self._max_workers, len(pending))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gigachat-upload") as pool:
            futures = {key: pool.submit(self._transport.upload_file, media) for key, media in pending.items()}
            # result() 即汇合点：任一上传失败，异常在这里抛出
            uploaded = {key: future.result().id for key, future in futures.items()}
        log_event(logging.INFO, "Uploaded attachments", count=len(uploaded), workers=workers)
        return uploaded
