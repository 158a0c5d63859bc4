"""流式生成引擎。

包含：
- buffer: 增量节流缓冲。
- runner: 单次流式读取循环（聊天、头脑风暴、行内续写共用）。
- session: 会话状态机。
- brainstorm: 头脑风暴多路生成。
- assist: 行内续写 / 润色。
- conversations: 会话列表缓存。
- tabs / workspace: 标签页与面板编排。
"""
