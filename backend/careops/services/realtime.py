"""
In-process fan-out of newly inserted messages.

One subscription per (view, conversation). Callbacks run synchronously on the
event loop, in insertion order, right after the inserting call commits.
"""

import logging
from collections import defaultdict
from typing import Callable, Dict
from uuid import uuid4

logger = logging.getLogger(__name__)


class Subscription:
    """Handle returned to subscribers; pass it back to unsubscribe."""

    def __init__(self, conversation_id: int, callback: Callable):
        self.id = uuid4().hex
        self.conversation_id = conversation_id
        self.callback = callback
        self.active = True

    def __repr__(self):
        return f"<Subscription {self.id[:8]} conversation={self.conversation_id} active={self.active}>"


class MessageBroker:
    def __init__(self):
        self._channels: Dict[int, Dict[str, Subscription]] = defaultdict(dict)

    def subscribe(self, conversation_id: int, callback: Callable) -> Subscription:
        subscription = Subscription(conversation_id, callback)
        self._channels[conversation_id][subscription.id] = subscription
        logger.debug("Subscribed %r", subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        # Safe to call twice
        subscription.active = False
        channel = self._channels.get(subscription.conversation_id)
        if channel is None:
            return
        channel.pop(subscription.id, None)
        if not channel:
            del self._channels[subscription.conversation_id]
        logger.debug("Unsubscribed %r", subscription)

    def publish(self, message) -> int:
        """Deliver to every live subscriber of the message's conversation"""
        delivered = 0
        for subscription in list(self._channels.get(message.conversation_id, {}).values()):
            if not subscription.active:
                continue
            try:
                subscription.callback(message)
                delivered += 1
            except Exception:
                logger.exception(
                    "Subscriber %r failed on message %s", subscription, message.id
                )
        return delivered

    def subscriber_count(self, conversation_id: int = None) -> int:
        if conversation_id is not None:
            return len(self._channels.get(conversation_id, {}))
        return sum(len(channel) for channel in self._channels.values())
