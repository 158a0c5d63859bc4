from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Protocol

from .models import ChatModel, Message


def parse_timestamp(raw: Any) -> datetime:
    return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))


@dataclass
class ConversationSummary:
    id: str
    title: str
    created_at: datetime
    last_message_at: datetime
    message_count: int = 0

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ConversationSummary":
        created = parse_timestamp(data["created_at"])
        last = data.get("last_message_at") or data.get("updated_at") or data["created_at"]
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            created_at=created,
            last_message_at=parse_timestamp(last),
            message_count=int(data.get("message_count", 0)),
        )


@dataclass
class ConversationDetail:
    summary: ConversationSummary
    messages: List[Message] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ConversationDetail":
        messages = [
            Message(
                id=str(m["id"]),
                role=m["role"],
                content=m.get("content") or "",
                created_at=parse_timestamp(m["created_at"]),
                reasoning_content=m.get("reasoning_content") or "",
            )
            for m in data.get("messages") or []
        ]
        return cls(summary=ConversationSummary.from_payload(data), messages=messages)


@dataclass
class ConversationPage:
    items: List[ConversationSummary]
    total: int


class ConversationApi(Protocol):
    """会话相关 REST 接口，由 ChatApiClient 实现，测试中可替换为内存实现。"""

    async def list_conversations(self, page: int = 1, page_size: int = 20) -> ConversationPage:
        ...

    async def get_conversation(self, conversation_id: str) -> ConversationDetail:
        ...

    async def delete_conversation(self, conversation_id: str) -> None:
        ...

    async def update_conversation_title(self, conversation_id: str, title: str) -> None:
        ...

    async def list_models(self) -> List[ChatModel]:
        ...
