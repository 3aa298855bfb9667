"""Mention persistence and delivery.

Mentions are recorded once, when a content unit is created.  Handles that
resolve to a user are delivered immediately; the rest wait for
:meth:`MentionNotifier.reconcile` once a user with that handle registers.
Nothing here is allowed to undo the content write that triggered it.
"""

from __future__ import annotations

import logging

from tally.config import EngineConfig
from tally.events import MENTION_CREATED, Event, EventBus
from tally.mentions.extractor import extract_mentions
from tally.models import ContentUnit, Mention, User
from tally.store import Store

logger = logging.getLogger(__name__)


class MentionNotifier:
    def __init__(self, store: Store, bus: EventBus, config: EngineConfig) -> None:
        self._store = store
        self._bus = bus
        self._config = config

    def process(self, content: ContentUnit) -> list[Mention]:
        """Record and deliver mentions found in a freshly created *content*.

        Returns the persisted mentions, or an empty list when extraction or
        delivery failed (the failure is logged).
        """
        try:
            return self._process(content)
        except Exception:
            logger.exception(
                "Mention processing failed for %s %s", content.content_type.value, content.id
            )
            return []

    def _process(self, content: ContentUnit) -> list[Mention]:
        handles = extract_mentions(content.body, self._config.mention_cap)
        if not handles:
            return []

        deliveries: list[tuple[Mention, User]] = []
        with self._store.transaction() as tx:
            mentions = tx.add_mentions(content.id, content.content_type, handles)
            users = tx.users_by_handles(handles)
            for mention in mentions:
                user = users.get(mention.handle)
                if user is None or user.id == content.author_id:
                    continue
                tx.record_delivery(mention.id, user.id)
                deliveries.append((mention, user))

        for mention, user in deliveries:
            self._notify(mention, user, content.author_id)
        logger.debug(
            "%d mention(s) on %s %s, %d delivered",
            len(mentions),
            content.content_type.value,
            content.id,
            len(deliveries),
        )
        return mentions

    def reconcile(self, handle: str) -> int:
        """Deliver stored mentions of *handle* now that it resolves.

        Returns the number of notifications sent.
        """
        deliveries: list[tuple[Mention, User, str]] = []
        with self._store.transaction() as tx:
            user = tx.get_user_by_handle(handle)
            if user is None:
                return 0
            for mention in tx.undelivered_mentions(handle):
                content = tx.get_content(mention.content_id, mention.content_type)
                if content is None or content.author_id == user.id:
                    continue
                tx.record_delivery(mention.id, user.id)
                deliveries.append((mention, user, content.author_id))

        for mention, user, author_id in deliveries:
            self._notify(mention, user, author_id)
        if deliveries:
            logger.info("Reconciled %d mention(s) of @%s", len(deliveries), user.handle)
        return len(deliveries)

    def _notify(self, mention: Mention, user: User, author_id: str) -> None:
        self._bus.emit(
            Event(
                type=MENTION_CREATED,
                recipient_id=user.id,
                payload={
                    "mention_id": mention.id,
                    "handle": mention.handle,
                    "content_id": mention.content_id,
                    "content_type": mention.content_type.value,
                    "author_id": author_id,
                },
            )
        )
