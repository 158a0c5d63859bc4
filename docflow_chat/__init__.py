"""DocFlow Chat 顶层包。

该包提供文档助手的客户端流式生成引擎，
包括配置加载、领域模型、流式传输与帧解码、增量节流缓冲、
会话状态机、头脑风暴多路生成、行内续写/润色以及会话列表管理等能力。
"""

from docflow_chat.api.service import build_workspace
from docflow_chat.engine.brainstorm import BrainstormCoordinator
from docflow_chat.engine.session import ChatSession

__all__ = ["BrainstormCoordinator", "ChatSession", "build_workspace"]
