"""聊天面板的编排层。

把一个 ChatSession、ChatTabs、ConversationCache 与 BrainstormCoordinator 组合起来：
切换/新建/关闭标签页或打开历史会话前，先停止正在进行的生成，
再按目标标签页绑定的会话 ID 加载历史或清空会话。
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from docflow_chat.domain.conversation import ConversationSummary
from docflow_chat.domain.models import ModelConfig, utcnow
from docflow_chat.engine.brainstorm import BrainstormCoordinator
from docflow_chat.engine.conversations import ConversationCache
from docflow_chat.engine.session import ChatSession
from docflow_chat.engine.tabs import ChatTabs
from docflow_chat.infrastructure.logging.logger import log_event


@dataclass
class DocumentReference:
    """从编辑器粘贴来的文档片段引用。"""

    file_name: str
    start_line: int
    end_line: int
    content: str

    def as_prefix(self) -> str:
        return f"```{self.file_name} (行 {self.start_line}-{self.end_line})\n{self.content}\n```\n\n"


class ChatWorkspace:
    def __init__(
        self,
        session: ChatSession,
        tabs: ChatTabs,
        cache: ConversationCache,
        brainstorm: BrainstormCoordinator,
    ):
        self.session = session
        self.tabs = tabs
        self.cache = cache
        self.brainstorm = brainstorm
        if not self.tabs.tabs:
            self.tabs.add_tab()

    def send(
        self,
        text: str,
        config: ModelConfig,
        document_reference: Optional[DocumentReference] = None,
    ) -> Optional[asyncio.Task]:
        user_input = (text or "").strip()
        if not user_input or self.session.status == "streaming":
            return None
        tab = self.tabs.active
        if tab is None:
            tab = self.tabs.get(self.tabs.add_tab())
        content = user_input
        if document_reference is not None:
            content = document_reference.as_prefix() + content
        # 标题只取用户输入，不含文档引用
        self.tabs.retitle_from_input(tab.id, user_input)
        return self.session.send_message(content, config, on_success=lambda: self._after_send(tab.id))

    def generate_ideas(self, topic: str, count: int, model: Optional[str] = None) -> Optional[asyncio.Task]:
        tab = self.tabs.active
        if tab is not None and (topic or "").strip():
            self.tabs.retitle_from_input(tab.id, topic)
        return self.brainstorm.generate(topic, count, model=model)

    async def switch_tab(self, tab_id: str) -> bool:
        if tab_id == self.tabs.active_id or self.tabs.get(tab_id) is None:
            return False
        self._stop_streaming()
        self.tabs.set_active(tab_id)
        await self._sync_session()
        return True

    def new_tab(self) -> str:
        self._stop_streaming()
        tab_id = self.tabs.add_tab()
        self.session.clear_messages()
        return tab_id

    async def close_tab(self, tab_id: str) -> None:
        if self.tabs.get(tab_id) is None:
            return
        was_active = tab_id == self.tabs.active_id
        if was_active:
            self._stop_streaming()
        self.tabs.remove_tab(tab_id)
        if not self.tabs.tabs:
            self.new_tab()
            return
        if was_active:
            await self._sync_session()

    async def open_session(self, summary: ConversationSummary) -> None:
        """打开历史会话：已有标签页绑定该会话时切过去，否则新建标签页并加载。"""

        existing = self.tabs.find_by_conversation(summary.id)
        if existing is not None:
            await self.switch_tab(existing.id)
            return
        self._stop_streaming()
        self.tabs.add_tab(title=summary.title or None, conversation_id=summary.id)
        await self.session.load_conversation(summary.id)

    # ---- 内部 ----

    def _stop_streaming(self) -> None:
        if self.session.status == "streaming":
            self.session.stop_generating()

    async def _sync_session(self) -> None:
        tab = self.tabs.active
        if tab is not None and tab.conversation_id:
            await self.session.load_conversation(tab.conversation_id)
        else:
            self.session.clear_messages()

    def _after_send(self, tab_id: str) -> None:
        conversation_id = self.session.conversation_id
        if not conversation_id:
            return
        if not self.tabs.bind_conversation(tab_id, conversation_id):
            return
        tab = self.tabs.get(tab_id)
        now = utcnow()
        self.cache.add_session(
            ConversationSummary(
                id=conversation_id,
                title=tab.title if tab else "",
                created_at=now,
                last_message_at=now,
                message_count=len(self.session.messages),
            )
        )
        log_event(
            logging.INFO,
            "Bound tab to conversation",
            {"component": "workspace"},
            tab_id=tab_id,
            conversation_id=conversation_id,
        )
