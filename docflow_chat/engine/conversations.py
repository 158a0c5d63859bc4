"""会话列表缓存。

显式构造、可注入的存储（不使用模块级全局变量）：

- refresh() 用第一页整体替换缓存；并发调用共享同一个在途任务。
- load_more() 追加下一页。
- add_session() 幂等地把新会话插到最前。
- rename() / remove() 只在服务端确认后修改本地缓存。
"""

import asyncio
import logging
from typing import Callable, List, Optional

from docflow_chat.config.settings import settings
from docflow_chat.domain.conversation import ConversationApi, ConversationSummary
from docflow_chat.domain.exceptions import ApiError, TransportError
from docflow_chat.infrastructure.logging.logger import log_event
from docflow_chat.infrastructure.notifications import LoggingNotifier, Notifier

CacheListener = Callable[["ConversationCache"], None]


class ConversationCache:
    def __init__(self, api: ConversationApi, notifier: Optional[Notifier] = None, cfg=settings):
        self._api = api
        self._notifier = notifier or LoggingNotifier()
        self._settings = cfg
        self._listeners: List[CacheListener] = []
        self._inflight: Optional[asyncio.Task] = None

        self.sessions: List[ConversationSummary] = []
        self.total = 0
        self.page = 0
        self.loading = False
        self.error: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return len(self.sessions) < self.total

    def subscribe(self, listener: CacheListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get(self, conversation_id: str) -> Optional[ConversationSummary]:
        for s in self.sessions:
            if s.id == conversation_id:
                return s
        return None

    async def refresh(self) -> List[ConversationSummary]:
        """重新拉取第一页。已有刷新在途时等待同一个任务，不重复请求。"""

        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.get_running_loop().create_task(self._refresh())
        return await asyncio.shield(self._inflight)

    async def load_more(self) -> bool:
        """追加下一页；没有更多或正在加载时返回 False。"""

        if self.loading or not self.has_more:
            return False
        next_page = self.page + 1
        self.loading = True
        self._emit()
        try:
            page = await self._api.list_conversations(next_page, self._settings.conversation_page_size)
        except TransportError as exc:
            self.loading = False
            self.error = exc.message
            log_event(logging.ERROR, "Load more conversations failed", self._log_ctx(), page=next_page, error=exc.message)
            self._emit()
            return False
        self.loading = False
        known = {s.id for s in self.sessions}
        self.sessions.extend(s for s in page.items if s.id not in known)
        self.total = page.total
        self.page = next_page
        self.error = None
        self._emit()
        return True

    def add_session(self, summary: ConversationSummary) -> None:
        if self.get(summary.id) is not None:
            return
        self.sessions.insert(0, summary)
        self.total += 1
        self._emit()

    async def rename(self, conversation_id: str, title: str) -> bool:
        text = (title or "").strip()
        if not text:
            return False
        try:
            await self._api.update_conversation_title(conversation_id, text)
        except TransportError as exc:
            self._notifier.error(exc.message)
            log_event(logging.ERROR, "Rename conversation failed", self._log_ctx(), conversation_id=conversation_id)
            return False
        session = self.get(conversation_id)
        if session is not None:
            session.title = text
            self._emit()
        return True

    async def remove(self, conversation_id: str) -> bool:
        try:
            await self._api.delete_conversation(conversation_id)
        except ApiError as exc:
            if exc.http_status != 404:
                self._notifier.error(exc.message)
                log_event(logging.ERROR, "Delete conversation failed", self._log_ctx(), conversation_id=conversation_id)
                return False
            log_event(logging.INFO, "Conversation already deleted", self._log_ctx(), conversation_id=conversation_id)
        except TransportError as exc:
            self._notifier.error(exc.message)
            log_event(logging.ERROR, "Delete conversation failed", self._log_ctx(), conversation_id=conversation_id)
            return False
        before = len(self.sessions)
        self.sessions = [s for s in self.sessions if s.id != conversation_id]
        if len(self.sessions) != before:
            self.total = max(0, self.total - 1)
        self._emit()
        return True

    async def _refresh(self) -> List[ConversationSummary]:
        self.loading = True
        self._emit()
        try:
            page = await self._api.list_conversations(1, self._settings.conversation_page_size)
        except TransportError as exc:
            self.loading = False
            self.error = exc.message
            log_event(logging.ERROR, "Refresh conversations failed", self._log_ctx(), error=exc.message)
            self._emit()
            return list(self.sessions)
        self.loading = False
        self.sessions = list(page.items)
        self.total = page.total
        self.page = 1
        self.error = None
        log_event(logging.INFO, "Refreshed conversations", self._log_ctx(), count=len(self.sessions), total=self.total)
        self._emit()
        return list(self.sessions)

    def _log_ctx(self):
        return {"component": "conversation_cache"}

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self)
