"""
Comment listing and manual moderation.

Comments are listed per post, newest first, with legacy offset cursors.
A moderator can override a comment's spam flag, relatedness and sentiment;
each override is stored as its own record and audited in the same
transaction.
"""

from typing import Optional

import structlog

from socialpulse.errors import InvalidRequestError, NotFoundError
from socialpulse.models.audit import AuditEntry
from socialpulse.models.enums import SentimentSource
from socialpulse.models.metrics import (
    CommentFilters,
    CommentOverride,
    CommentOverridePatch,
    CommentRecord,
)
from socialpulse.models.pagination import OffsetCursor, Page
from socialpulse.storage.base import StorageBackend
from socialpulse.utils.clock import Clock, utc_now
from socialpulse.utils.ids import require_uuid
from socialpulse.utils.logging import bind_request

from .pagination import build_page, clamp_page_size, decode_offset

logger = structlog.get_logger()

MODERATION_FIELDS = {"is_spam", "related_to_post_text", "sentiment", "sentiment_source"}


class CommentService:
    """
    Reads and moderates comments.

    Example:
        >>> service = CommentService(storage)
        >>> page = service.list_comments(post_id, CommentFilters(is_spam=False), limit=20)
        >>> service.override(comment_id, CommentOverridePatch(is_spam=True), actor_user_id)
    """

    def __init__(self, storage: StorageBackend, clock: Clock = utc_now):
        self.storage = storage
        self.clock = clock
        self.logger = structlog.get_logger()

    def list_comments(
        self,
        post_id: str,
        filters: Optional[CommentFilters] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> Page:
        """
        One page of a post's comments ordered by (published_at or created_at DESC, id DESC).

        Raises:
            NotFoundError: the post does not exist
            InvalidRequestError: the cursor is malformed or a keyset cursor
        """
        if self.storage.get_post(post_id) is None:
            raise NotFoundError("Post not found", details={"post_id": post_id})
        page_size = clamp_page_size(limit)
        offset = decode_offset(cursor)
        fetched = self.storage.list_comments(
            post_id, filters or CommentFilters(), limit=page_size + 1, offset=offset
        )
        return build_page(fetched, page_size, lambda _c: OffsetCursor(offset=offset + page_size))

    def override(
        self,
        comment_id: str,
        patch: CommentOverridePatch,
        actor_user_id: str,
        request_id: Optional[str] = None,
    ) -> CommentRecord:
        """
        Apply a manual moderation patch.

        Setting a sentiment marks it as manually sourced, so re-ingestion of
        the comment keeps it.

        Raises:
            InvalidRequestError: non-UUID ids or an empty patch
            NotFoundError: the comment does not exist
        """
        comment_id = require_uuid(comment_id, "comment_id")
        actor = require_uuid(actor_user_id, "actor_user_id")
        if request_id:
            bind_request(request_id, actor)
        if patch.is_empty:
            raise InvalidRequestError("Override patch is empty")

        now = self.clock()
        with self.storage.transaction():
            before = self.storage.get_comment(comment_id)
            if before is None:
                raise NotFoundError("Comment not found", details={"comment_id": comment_id})

            changes: dict = {"updated_at": now}
            if patch.is_spam is not None:
                changes["is_spam"] = patch.is_spam
            if patch.related_to_post_text is not None:
                changes["related_to_post_text"] = patch.related_to_post_text
            if patch.sentiment is not None:
                changes["sentiment"] = patch.sentiment
                changes["sentiment_source"] = SentimentSource.MANUAL

            after = before.model_copy(update=changes)
            self.storage.update_comment(after)
            self.storage.insert_comment_override(
                CommentOverride(
                    comment_id=comment_id,
                    actor_user_id=actor,
                    is_spam=patch.is_spam,
                    related_to_post_text=patch.related_to_post_text,
                    sentiment=patch.sentiment,
                    reason=patch.reason,
                    created_at=now,
                )
            )
            self.storage.append_audit(
                AuditEntry(
                    actor_user_id=actor,
                    action="social_comment_override",
                    resource_type="comment",
                    resource_id=comment_id,
                    request_id=request_id,
                    before=before.model_dump(mode="json", include=MODERATION_FIELDS),
                    after={
                        **after.model_dump(mode="json", include=MODERATION_FIELDS),
                        "reason": patch.reason,
                    },
                    created_at=now,
                )
            )

        self.logger.info(
            "comment_overridden",
            comment_id=comment_id,
            actor_user_id=actor,
            fields=sorted(patch.model_dump(exclude_none=True, exclude={"reason"})),
        )
        return after
