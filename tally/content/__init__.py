"""Posts, reviews and comments."""

from tally.content.service import ContentService, normalize_tags, purge_content

__all__ = ["ContentService", "normalize_tags", "purge_content"]
