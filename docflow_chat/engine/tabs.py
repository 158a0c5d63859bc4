"""聊天标签页。

每个标签页最多绑定一个服务端会话 ID；绑定只发生一次，之后的绑定请求被忽略。
"""

from dataclasses import dataclass
from itertools import count
from typing import List, Optional

from docflow_chat.config.settings import settings
from docflow_chat.prompts import placeholder

TITLE_MAX_CHARS = 24


@dataclass
class ChatTab:
    id: str
    title: str
    conversation_id: Optional[str] = None


def title_from_input(text: str) -> str:
    text = text.strip()
    if len(text) > TITLE_MAX_CHARS:
        return text[:TITLE_MAX_CHARS] + "..."
    return text


class ChatTabs:
    def __init__(self, cfg=settings):
        self._settings = cfg
        self._counter = count(1)
        self.tabs: List[ChatTab] = []
        self.active_id: Optional[str] = None

    @property
    def default_title(self) -> str:
        return placeholder("new_tab_title", self._settings.locale)

    @property
    def active(self) -> Optional[ChatTab]:
        return self.get(self.active_id) if self.active_id else None

    def get(self, tab_id: str) -> Optional[ChatTab]:
        for tab in self.tabs:
            if tab.id == tab_id:
                return tab
        return None

    def find_by_conversation(self, conversation_id: str) -> Optional[ChatTab]:
        for tab in self.tabs:
            if tab.conversation_id == conversation_id:
                return tab
        return None

    def add_tab(self, title: Optional[str] = None, conversation_id: Optional[str] = None) -> str:
        """新建标签页并设为当前页，返回其 ID。"""

        tab = ChatTab(id=f"tab-{next(self._counter)}", title=title or self.default_title, conversation_id=conversation_id)
        self.tabs.append(tab)
        self.active_id = tab.id
        return tab.id

    def remove_tab(self, tab_id: str) -> None:
        """关闭标签页；关闭的是当前页时，激活原位置上的相邻页。"""

        position = next((i for i, t in enumerate(self.tabs) if t.id == tab_id), None)
        if position is None:
            return
        del self.tabs[position]
        if self.active_id != tab_id:
            return
        if self.tabs:
            self.active_id = self.tabs[min(position, len(self.tabs) - 1)].id
        else:
            self.active_id = None

    def set_active(self, tab_id: str) -> bool:
        if self.get(tab_id) is None:
            return False
        self.active_id = tab_id
        return True

    def bind_conversation(self, tab_id: str, conversation_id: str) -> bool:
        tab = self.get(tab_id)
        if tab is None or tab.conversation_id or not conversation_id:
            return False
        tab.conversation_id = conversation_id
        return True

    def retitle_from_input(self, tab_id: str, text: str) -> bool:
        """仍是默认标题的标签页用用户输入的前 24 个字符重命名。"""

        tab = self.get(tab_id)
        if tab is None or tab.title != self.default_title or not text.strip():
            return False
        tab.title = title_from_input(text)
        return True
