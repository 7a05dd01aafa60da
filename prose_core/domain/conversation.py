from dataclasses import dataclass
from typing import List, Optional, Protocol

from .models import ChatMessage


@dataclass
class Conversation:
    id: str
    tool_name: str
    messages: List[ChatMessage]
    created_at: float
    last_activity: float


@dataclass
class ConversationInfo:
    tool_name: str
    message_count: int
    created_at: float
    last_activity: float


class ConversationStore(Protocol):
    def start(self, tool_name: str, system_message: str) -> str:
        ...

    def append(self, conversation_id: str, message: ChatMessage) -> None:
        ...

    def snapshot(self, conversation_id: str) -> List[ChatMessage]:
        ...

    def reset(self, conversation_id: str) -> None:
        ...

    def delete(self, conversation_id: str) -> None:
        ...

    def sweep(self, max_age_seconds: float) -> int:
        ...

    def info(self, conversation_id: str) -> Optional[ConversationInfo]:
        ...

    def __contains__(self, conversation_id: object) -> bool:
        ...

    def __len__(self) -> int:
        ...
