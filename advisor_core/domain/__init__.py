"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / ChatRequest / ChatResult 模型。
- context: 请求 context 旁路字典中使用的带类型键。
- memory: 会话记忆的存储模型及 ChatMemory 协议。
- exceptions: 业务异常类型定义。
"""
