"""Per-suggestion comment threads with author-only edit and delete."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from quorum.errors import AuthorizationError, ValidationError
from quorum.identity import normalize_username
from quorum.schemas.annotation import BucketKey, Comment, utc_now

logger = logging.getLogger(__name__)


class CommentThread:
    """Stores comments keyed by (bucket, suggestion id), oldest first."""

    def __init__(self, max_len: int = 500, max_per_suggestion: int = 800) -> None:
        self._max_len = max_len
        self._max_per_suggestion = max_per_suggestion
        self._threads: dict[tuple[BucketKey, str], list[Comment]] = {}
        self._index: dict[str, tuple[BucketKey, str]] = {}

    def _clean_text(self, text: str | None) -> str:
        cleaned = str(text or "").strip()
        if not cleaned:
            raise ValidationError("comment text required")
        if len(cleaned) > self._max_len:
            raise ValidationError(
                f"comment exceeds {self._max_len} characters ({len(cleaned)})"
            )
        return cleaned

    def _locate(self, comment_id: str) -> tuple[list[Comment], int]:
        key = self._index.get(comment_id)
        if key is None:
            raise ValidationError(f"unknown comment: {comment_id}")
        thread = self._threads[key]
        for position, comment in enumerate(thread):
            if comment.id == comment_id:
                return thread, position
        raise ValidationError(f"unknown comment: {comment_id}")

    def add(self, bucket: BucketKey, suggestion_id: str, author: str, text: str) -> str:
        """Append a comment and return its id."""
        cleaned = self._clean_text(text)
        thread = self._threads.get((bucket, suggestion_id), [])
        if len(thread) >= self._max_per_suggestion:
            raise ValidationError(
                f"suggestion {suggestion_id} already has {self._max_per_suggestion} comments"
            )
        comment = Comment(suggestion_id=suggestion_id, author_username=author, text=cleaned)
        self._threads.setdefault((bucket, suggestion_id), thread).append(comment)
        self._index[comment.id] = (bucket, suggestion_id)
        logger.debug("Comment %s added by %s on %s", comment.id, author, suggestion_id)
        return comment.id

    def edit(self, comment_id: str, author: str, new_text: str) -> Comment:
        thread, position = self._locate(comment_id)
        comment = thread[position]
        if comment.author_username != author:
            raise AuthorizationError("only the comment author can edit it")
        cleaned = self._clean_text(new_text)
        updated = comment.model_copy(update={"text": cleaned, "edited_at": utc_now()})
        thread[position] = updated
        return updated

    def delete(self, comment_id: str, author: str) -> Comment:
        thread, position = self._locate(comment_id)
        comment = thread[position]
        if comment.author_username != author:
            raise AuthorizationError("only the comment author can delete it")
        del thread[position]
        del self._index[comment_id]
        return comment

    def get(self, comment_id: str) -> Comment:
        thread, position = self._locate(comment_id)
        return thread[position]

    def owner_of(self, comment_id: str) -> tuple[BucketKey, str] | None:
        return self._index.get(comment_id)

    def comments_for(self, bucket: BucketKey, suggestion_id: str) -> list[Comment]:
        """Full history, newest first; later insertion wins ties."""
        thread = self._threads.get((bucket, suggestion_id), [])
        return sorted(reversed(thread), key=lambda c: c.created_at, reverse=True)

    def history(self, bucket: BucketKey, suggestion_id: str) -> list[Comment]:
        """Full history in insertion order."""
        return list(self._threads.get((bucket, suggestion_id), []))

    def count(self, bucket: BucketKey, suggestion_id: str) -> int:
        return len(self._threads.get((bucket, suggestion_id), []))

    def drop(self, bucket: BucketKey, suggestion_id: str) -> int:
        thread = self._threads.pop((bucket, suggestion_id), [])
        for comment in thread:
            self._index.pop(comment.id, None)
        return len(thread)

    def restore(
        self, bucket: BucketKey, suggestion_id: str, comments: Iterable[Comment],
    ) -> None:
        """Bulk-load a thread from a snapshot.

        Text is clamped to the length limit and authors are normalized;
        duplicate ids and blank comments are skipped.
        """
        self.drop(bucket, suggestion_id)
        thread: list[Comment] = []
        for comment in comments:
            if comment.id in self._index:
                continue
            text = str(comment.text or "").strip()[:self._max_len].strip()
            if not text:
                logger.warning("Skipping blank comment %s on %s", comment.id, suggestion_id)
                continue
            thread.append(comment.model_copy(update={
                "suggestion_id": suggestion_id,
                "author_username": normalize_username(comment.author_username) or "local",
                "text": text,
            }))
            self._index[comment.id] = (bucket, suggestion_id)
            if len(thread) >= self._max_per_suggestion:
                break
        if thread:
            self._threads[(bucket, suggestion_id)] = thread

    def clear(self) -> None:
        self._threads.clear()
        self._index.clear()

    def keys(self) -> list[tuple[BucketKey, str]]:
        return list(self._threads)
