"""对外 API 服务模块。

提供组装好的默认对象图，以及供脚本调用的简化函数接口。
"""

from typing import Any, Dict, List, Optional

import httpx

from docflow_chat.api.client import ChatApiClient
from docflow_chat.config.settings import settings
from docflow_chat.domain.models import ModelConfig
from docflow_chat.engine.brainstorm import BrainstormCoordinator
from docflow_chat.engine.conversations import ConversationCache
from docflow_chat.engine.session import ChatSession
from docflow_chat.engine.tabs import ChatTabs
from docflow_chat.engine.workspace import ChatWorkspace
from docflow_chat.infrastructure.logging.logger import logger
from docflow_chat.infrastructure.notifications import LoggingNotifier, Notifier
from docflow_chat.prompts import load_system_prompt
from docflow_chat.transport import create_transport


def build_workspace(
    cfg=settings,
    notifier: Optional[Notifier] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> ChatWorkspace:
    """按配置组装默认的 ChatWorkspace。

    Args:
        cfg: 配置对象，默认使用全局 settings。
        notifier: 通知出口，默认写日志。
        client: 可选的共享 AsyncClient（调用方负责关闭）。
    """

    notifier = notifier or LoggingNotifier()
    transport = create_transport(cfg, client=client)
    api = ChatApiClient(cfg, client=client)
    session = ChatSession(transport, api=api, notifier=notifier, cfg=cfg)
    return ChatWorkspace(
        session=session,
        tabs=ChatTabs(cfg),
        cache=ConversationCache(api, notifier=notifier, cfg=cfg),
        brainstorm=BrainstormCoordinator(transport, notifier=notifier, cfg=cfg),
    )


async def run_chat(
    user_input: str,
    conversation_id: Optional[str] = None,
    model: Optional[str] = None,
    cfg=settings,
) -> Dict[str, Any]:
    """发送一条消息并等待流式回复结束。

    Args:
        user_input: 用户输入内容
        conversation_id: 会话ID（可选，不提供则创建新会话）
        model: 模型名称（可选，默认 settings.default_model）

    Returns:
        包含会话ID、助手回复与状态的字典
    """
    workspace = build_workspace(cfg)
    session = workspace.session
    if conversation_id and not await session.load_conversation(conversation_id):
        raise RuntimeError(session.error or f"Failed to load conversation {conversation_id}")
    config = ModelConfig(
        model_name=model or cfg.default_model,
        system_prompt=load_system_prompt(locale=cfg.locale),
    )
    if workspace.send(user_input, config) is None:
        raise ValueError("user_input must not be blank")
    try:
        await session.wait()
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {
            "conversation_id": session.conversation_id,
            "error": str(e),
        }})
        raise
    reply = session.messages[-1]
    return {
        "conversation_id": session.conversation_id,
        "status": session.status,
        "error": session.error,
        "assistant_message": {
            "id": reply.id,
            "content": reply.content,
            "reasoning_content": reply.reasoning_content,
            "created_at": reply.created_at.isoformat(),
        },
    }


async def list_conversations(cfg=settings) -> List[Dict[str, Any]]:
    """列出第一页会话。

    Returns:
        会话列表，每项包含 id, title, created_at, last_message_at, message_count
    """
    page = await ChatApiClient(cfg).list_conversations(1)
    return [
        {
            "id": c.id,
            "title": c.title,
            "created_at": c.created_at.isoformat(),
            "last_message_at": c.last_message_at.isoformat(),
            "message_count": c.message_count,
        }
        for c in page.items
    ]
