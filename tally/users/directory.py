"""User registration, verification, bans and account removal."""

from __future__ import annotations

import logging
from typing import Optional

from tally.content.service import purge_content
from tally.errors import ForbiddenError, NotFoundError, TallyError, ValidationError
from tally.log import security_logger
from tally.mentions import MentionNotifier, normalize_handle
from tally.models import User
from tally.reputation import ReputationEngine
from tally.store import Store, new_id
from tally.users.access import require_active, require_moderator

logger = logging.getLogger(__name__)


class UserDirectory:
    def __init__(
        self, store: Store, mentions: MentionNotifier, reputation: ReputationEngine
    ) -> None:
        self._store = store
        self._mentions = mentions
        self._reputation = reputation

    # ------------------------------------------------------------------
    # Registration and lookup
    # ------------------------------------------------------------------

    def register_user(
        self,
        handle: str,
        *,
        is_verified: bool = False,
        is_moderator: bool = False,
        user_id: Optional[str] = None,
    ) -> User:
        """Create a user; stored mentions of the new handle are then delivered."""
        handle = normalize_handle(handle)
        with self._store.transaction() as tx:
            if tx.get_user_by_handle(handle) is not None:
                raise ValidationError(f"Handle @{handle} is already taken")
            if user_id is not None and tx.get_user(user_id) is not None:
                raise ValidationError(f"User id {user_id} is already in use")
            user = tx.add_user(
                User(
                    id=user_id or new_id(),
                    handle=handle,
                    is_verified=is_verified,
                    is_moderator=is_moderator,
                )
            )

        logger.info("Registered @%s as %s", user.handle, user.id)
        if is_verified:
            self._reputation.schedule(user.id)
        try:
            self._mentions.reconcile(handle)
        except TallyError:
            logger.exception("Mention reconciliation failed for @%s", handle)
        return user

    def get_user(self, user_id: str) -> User:
        with self._store.transaction() as tx:
            user = tx.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def get_user_by_handle(self, handle: str) -> User:
        handle = normalize_handle(handle)
        with self._store.transaction() as tx:
            user = tx.get_user_by_handle(handle)
        if user is None:
            raise NotFoundError(f"No user with handle @{handle}")
        return user

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def set_verified(self, user_id: str, verified: bool = True) -> User:
        """Record the outcome of identity verification for *user_id*."""
        with self._store.transaction() as tx:
            user = tx.get_user(user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")
            if user.is_verified != verified:
                tx.update_user(user_id, is_verified=verified)
                user.is_verified = verified
                changed = True
            else:
                changed = False
        if changed:
            logger.info("User %s verification set to %s", user_id, verified)
            self._reputation.schedule(user_id)
        return user

    def ban_user(self, moderator_id: str, user_id: str, reason: str = "") -> User:
        with self._store.transaction() as tx:
            moderator = require_moderator(tx, moderator_id, "ban users")
            if moderator.id == user_id:
                security_logger.warning("Moderator %s attempted to ban themself", moderator.id)
                raise ForbiddenError("Moderators cannot ban themselves")
            user = tx.get_user(user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")
            tx.update_user(user_id, is_banned=True, ban_reason=reason or None)
            user.is_banned, user.ban_reason = True, reason or None
        logger.info("User %s banned by %s: %s", user_id, moderator.id, reason or "-")
        return user

    def unban_user(self, moderator_id: str, user_id: str) -> User:
        with self._store.transaction() as tx:
            moderator = require_moderator(tx, moderator_id, "unban users")
            user = tx.get_user(user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")
            tx.update_user(user_id, is_banned=False, ban_reason=None)
            user.is_banned, user.ban_reason = False, None
        logger.info("User %s unbanned by %s", user_id, moderator.id)
        return user

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def delete_user(self, actor_id: str, user_id: str) -> set[str]:
        """Delete *user_id* together with everything it owns.

        Authored content goes with the account; the user's votes elsewhere
        are removed and the affected counters re-aggregated from the ledger.
        Returns the ids of the other users whose reputation was rescheduled.
        """
        affected_authors: set[str] = set()
        with self._store.transaction() as tx:
            actor = require_active(tx, actor_id)
            if actor.id != user_id and not actor.is_moderator:
                security_logger.warning("User %s tried to delete account %s", actor.id, user_id)
                raise ForbiddenError("Only the account owner or a moderator may delete it")
            user = tx.get_user(user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")

            owned = tx.content_by_author(user_id)
            owned_keys = {(c.id, c.content_type) for c in owned}
            for content in owned:
                purge_content(tx, content)

            voted = {
                (v.content_id, v.content_type)
                for v in tx.votes_by_user(user_id)
                if (v.content_id, v.content_type) not in owned_keys
            }
            reported = {
                (r.content_id, r.content_type)
                for r in tx.reports_by_reporter(user_id)
                if (r.content_id, r.content_type) not in owned_keys
            }
            tx.delete_votes_by_user(user_id)
            for content_id, content_type in sorted(voted):
                tx.recount_votes(content_id, content_type)

            for content_id, content_type in voted | reported:
                content = tx.get_content(content_id, content_type)
                if content is not None and content.author_id != user_id:
                    affected_authors.add(content.author_id)

            # Mention deliveries cascade; filed reports stay with reporter_id nulled.
            tx.delete_user(user_id)

        logger.info(
            "Deleted user %s (%d content units, %d votes re-aggregated)",
            user_id,
            len(owned),
            len(voted),
        )
        for author_id in affected_authors:
            self._reputation.schedule(author_id)
        return affected_authors
