"""对话编排层。

- options: 参数合并与消息校验。
- attachments: 附件上传。
- mapper: 对话消息与线上消息的转换、请求构造。
- streaming: 流式片段拼装。
- usage: token 统计与响应元数据。
- model: GigaChatModel，工具调用循环。
"""
