"""进程内会话存储与空闲清扫。

每次编排调用都会创建并销毁自己的会话 ID，存储本身只负责：
追加消息、返回防御性副本、重置到 system 消息、删除以及按空闲时间回收。
清扫线程可能与调用线程并发访问，因此所有操作都在锁内完成。
"""

import itertools
import logging
import threading
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from prose_core.domain.conversation import Conversation, ConversationInfo, ConversationStore
from prose_core.domain.exceptions import ConversationNotFoundError
from prose_core.domain.models import ChatMessage
from prose_core.infrastructure.logging.logger import logger


Clock = Callable[[], float]


class InMemoryConversationStore(ConversationStore):
    def __init__(self, clock: Optional[Clock] = None):
        self._clock: Clock = clock or time.monotonic
        self._conversations: Dict[str, Conversation] = {}
        self._counter = itertools.count(1)
        self._lock = threading.RLock()

    def start(self, tool_name: str, system_message: str) -> str:
        with self._lock:
            # 计数器 + 毫秒时间戳 + 工具名，保证进程内唯一
            cid = f"{tool_name}-{next(self._counter)}-{int(time.time() * 1000)}"
            now = self._clock()
            self._conversations[cid] = Conversation(
                id=cid,
                tool_name=tool_name,
                messages=[ChatMessage(role="system", content=system_message)],
                created_at=now,
                last_activity=now,
            )
        return cid

    def append(self, conversation_id: str, message: ChatMessage) -> None:
        with self._lock:
            conv = self._conversations.get(conversation_id)
            if conv is None:
                raise ConversationNotFoundError(conversation_id)
            conv.messages.append(replace(message, meta=dict(message.meta)))
            conv.last_activity = self._clock()

    def snapshot(self, conversation_id: str) -> List[ChatMessage]:
        with self._lock:
            conv = self._conversations.get(conversation_id)
            if conv is None:
                raise ConversationNotFoundError(conversation_id)
            return [replace(m, meta=dict(m.meta)) for m in conv.messages]

    def reset(self, conversation_id: str) -> None:
        with self._lock:
            conv = self._conversations.get(conversation_id)
            if conv is None:
                return
            del conv.messages[1:]
            conv.last_activity = self._clock()

    def delete(self, conversation_id: str) -> None:
        with self._lock:
            self._conversations.pop(conversation_id, None)

    def sweep(self, max_age_seconds: float) -> int:
        """删除空闲时间超过 max_age_seconds 的会话，返回删除数量。"""

        with self._lock:
            now = self._clock()
            stale = [
                cid
                for cid, conv in self._conversations.items()
                if now - conv.last_activity > max_age_seconds
            ]
            for cid in stale:
                del self._conversations[cid]
        if stale:
            logger.info(
                "Cleared idle conversations",
                extra={"extra": {"count": len(stale), "max_age_seconds": max_age_seconds}},
            )
        return len(stale)

    def info(self, conversation_id: str) -> Optional[ConversationInfo]:
        with self._lock:
            conv = self._conversations.get(conversation_id)
            if conv is None:
                return None
            return ConversationInfo(
                tool_name=conv.tool_name,
                message_count=len(conv.messages),
                created_at=conv.created_at,
                last_activity=conv.last_activity,
            )

    def __contains__(self, conversation_id: object) -> bool:
        with self._lock:
            return conversation_id in self._conversations

    def __len__(self) -> int:
        with self._lock:
            return len(self._conversations)


class ConversationSweeper:
    """周期性调用 store.sweep 的后台线程，生命周期归编排器实例所有。

    stop() 幂等；同一实例停止后不能再次启动。
    """

    def __init__(self, store: ConversationStore, interval_seconds: float, max_age_seconds: float):
        self._store = store
        self._interval = interval_seconds
        self._max_age = max_age_seconds
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="ConversationSweeper", daemon=True)
        self._thread.start()
        logger.info(
            "Conversation sweeper started",
            extra={"extra": {"interval_seconds": self._interval, "max_age_seconds": self._max_age}},
        )

    def stop(self, wait: bool = True) -> None:
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        if wait and self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
        logger.info("Conversation sweeper stopped")

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self._store.sweep(self._max_age)
            except Exception as exc:  # noqa: BLE001
                logger.log(logging.ERROR, "Conversation sweep failed", extra={"extra": {"error": str(exc)}})
