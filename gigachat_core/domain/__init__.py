"""领域层模型与协议。

包含：
- models: 统一的 Message / ChatResponse 等对话模型。
- completion: GigaChat chat/completions 的线上请求/响应模型。
- exceptions: 业务异常类型定义。
"""
