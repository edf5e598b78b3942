"""GigaChat 传输层。

该包下的模块负责：
- 定义传输层抽象接口 (base)。
- 提供基于 httpx 的 GigaChat 实现 (gigachat_client)。
"""

from gigachat_core.config.settings import settings
from gigachat_core.providers.base import ChatTransport
from gigachat_core.providers.gigachat_client import GigaChatClient


def create_transport(cfg=None) -> ChatTransport:
    """按配置创建传输层实例，默认取全局 settings。"""

    return GigaChatClient(cfg or settings)
