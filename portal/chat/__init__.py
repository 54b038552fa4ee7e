"""
对话模块

- conversations: 对话 CRUD / 收藏 / 归档
- messages: 消息读写、流式消息覆盖
- relay: 注入记忆上下文后调用 LLM，自动命名
"""
