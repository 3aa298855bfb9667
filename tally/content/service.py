"""Content submission, retrieval and removal."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from tally.config import EngineConfig
from tally.errors import ForbiddenError, NotFoundError, ValidationError
from tally.log import security_logger
from tally.mentions import MentionNotifier
from tally.models import (
    ContentType,
    ContentUnit,
    ModerationStatus,
    SubmitResult,
    parse_enum,
    utcnow,
)
from tally.reputation import ReputationEngine
from tally.store import Store, UnitOfWork, new_id
from tally.users.access import require_active

logger = logging.getLogger(__name__)

MAX_TAGS = 10
MAX_TAG_LENGTH = 30
MAX_TOP_LIMIT = 100


def normalize_tags(tags: Optional[Iterable[str]]) -> list[str]:
    """Lower-case, strip and de-duplicate tags, keeping first-seen order."""
    result: list[str] = []
    for raw in tags or []:
        if not isinstance(raw, str):
            raise ValidationError(f"Tags must be strings, got {raw!r}")
        tag = raw.strip().lower()
        if not tag:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            raise ValidationError(f"Tag {tag[:MAX_TAG_LENGTH]!r}... exceeds {MAX_TAG_LENGTH} characters")
        if tag not in result:
            result.append(tag)
    if len(result) > MAX_TAGS:
        raise ValidationError(f"At most {MAX_TAGS} tags are allowed")
    return result


def validate_body(body: str, content_type: ContentType) -> str:
    if not isinstance(body, str) or not body.strip():
        raise ValidationError("Body must not be empty")
    if len(body) > content_type.max_length:
        raise ValidationError(
            f"A {content_type.value} body is limited to {content_type.max_length} characters"
        )
    return body


def purge_content(tx: UnitOfWork, content: ContentUnit) -> None:
    """Delete *content* with its votes, reports and mentions.

    Moderation audit entries are kept.
    """
    tx.delete_votes_for_content(content.id, content.content_type)
    tx.delete_reports_for_content(content.id, content.content_type)
    tx.delete_mentions_for_content(content.id, content.content_type)
    tx.delete_content(content.id, content.content_type)


class ContentService:
    def __init__(
        self,
        store: Store,
        config: EngineConfig,
        mentions: MentionNotifier,
        reputation: ReputationEngine,
    ) -> None:
        self._store = store
        self._config = config
        self._mentions = mentions
        self._reputation = reputation

    def submit_content(
        self,
        author_id: str,
        body: str,
        content_type: ContentType | str,
        tags: Optional[Iterable[str]] = None,
    ) -> SubmitResult:
        """Create a content unit in ``pending`` status.

        Mentions in the body are processed after the content is committed;
        their failure does not affect the returned result.
        """
        with self._store.transaction() as tx:
            author = require_active(tx, author_id)
            content_type = parse_enum(ContentType, content_type, "content type")
            body = validate_body(body, content_type)
            tags = normalize_tags(tags)
            content = tx.add_content(
                ContentUnit(
                    id=new_id(),
                    content_type=content_type,
                    author_id=author.id,
                    body=body,
                    tags=tags,
                    moderation_status=ModerationStatus.pending,
                )
            )
            tx.update_user(author.id, last_active_at=utcnow())

        logger.info("User %s submitted %s %s", author.id, content_type.value, content.id)
        mentions = self._mentions.process(content)
        return SubmitResult(
            id=content.id,
            created_at=content.created_at,
            mentions=[m.handle for m in mentions],
        )

    def get_content(self, content_id: str, content_type: ContentType | str) -> ContentUnit:
        content_type = parse_enum(ContentType, content_type, "content type")
        with self._store.transaction() as tx:
            content = tx.get_content(content_id, content_type)
        if content is None:
            raise NotFoundError(f"{content_type.value.capitalize()} {content_id} not found")
        return content

    def delete_content(
        self, actor_id: str, content_id: str, content_type: ContentType | str
    ) -> None:
        """Remove a content unit; only its author may do so."""
        content_type = parse_enum(ContentType, content_type, "content type")
        with self._store.transaction() as tx:
            actor = require_active(tx, actor_id)
            content = tx.get_content(content_id, content_type, lock=True)
            if content is None:
                raise NotFoundError(f"{content_type.value.capitalize()} {content_id} not found")
            if content.author_id != actor.id:
                security_logger.warning(
                    "User %s tried to delete %s %s owned by %s",
                    actor.id,
                    content_type.value,
                    content_id,
                    content.author_id,
                )
                raise ForbiddenError("Only the author may delete this content")
            purge_content(tx, content)

        logger.info("Deleted %s %s", content_type.value, content_id)
        self._reputation.schedule(content.author_id)

    def top_content(
        self,
        content_type: ContentType | str | None = None,
        limit: int = 20,
        statuses: Optional[Iterable[ModerationStatus | str]] = (ModerationStatus.approved,),
        offset: int = 0,
    ) -> list[ContentUnit]:
        """Return content ranked by net score, highest first.

        ``statuses=None`` ranks content in every moderation status.
        """
        if content_type is not None:
            content_type = parse_enum(ContentType, content_type, "content type")
        if statuses is not None:
            statuses = [parse_enum(ModerationStatus, s, "moderation status") for s in statuses]
        limit = max(1, min(limit, MAX_TOP_LIMIT))
        with self._store.transaction() as tx:
            return tx.top_content(content_type, statuses, limit=limit, offset=max(0, offset))
