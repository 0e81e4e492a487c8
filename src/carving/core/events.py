"""
Notifications produced by the carving pipeline.

Observers (views, indexers) subscribe to a Notifier to receive content events
for newly carved files and directories, and summary messages when a job ends.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List

from .models import ContentNode


logger = logging.getLogger(__name__)

MODULE_NAME = "Unallocated Carver"


class MessageType(str, Enum):
    """Severity of an ingest message."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class ModuleContentEvent:
    """Signals that content under a node changed."""
    module_name: str
    content: ContentNode


@dataclass
class IngestMessage:
    """
    A message posted to the ingest inbox.

    Attributes:
        message_type: Severity of the message
        module_name: Module that posted the message
        subject: One-line subject
        details: Human-readable body
        data: Structured payload for programmatic consumers
        posted_at: When the message was created
    """
    message_type: MessageType
    module_name: str
    subject: str
    details: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    posted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


ContentListener = Callable[[ModuleContentEvent], None]
MessageListener = Callable[[IngestMessage], None]


class Notifier:
    """
    Thread-safe fan-out of content events and ingest messages.

    Listener failures are logged and never propagate back into the pipeline.
    User-facing notifications (``notify_error``/``notify_info``) are posted as
    ingest messages so a single subscription sees everything.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._content_listeners: List[ContentListener] = []
        self._message_listeners: List[MessageListener] = []

    def subscribe_content(self, listener: ContentListener) -> None:
        with self._lock:
            self._content_listeners.append(listener)

    def subscribe_messages(self, listener: MessageListener) -> None:
        with self._lock:
            self._message_listeners.append(listener)

    def fire_content_event(self, event: ModuleContentEvent) -> None:
        """Deliver a content event to every content listener."""
        with self._lock:
            listeners = list(self._content_listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Content listener failed for {event.content.content_id}: {e}")

    def post_message(self, message: IngestMessage) -> None:
        """Deliver an ingest message to every message listener."""
        with self._lock:
            listeners = list(self._message_listeners)
        for listener in listeners:
            try:
                listener(message)
            except Exception as e:
                logger.warning(f"Message listener failed for '{message.subject}': {e}")

    def notify_error(self, subject: str, details: str) -> None:
        self.post_message(IngestMessage(MessageType.ERROR, MODULE_NAME, subject, details))

    def notify_info(self, subject: str, details: str) -> None:
        self.post_message(IngestMessage(MessageType.INFO, MODULE_NAME, subject, details))
