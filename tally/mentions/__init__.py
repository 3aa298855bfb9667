"""@handle mentions: extraction at creation time and notification delivery."""

from tally.mentions.extractor import extract_mentions, normalize_handle
from tally.mentions.notifier import MentionNotifier

__all__ = ["MentionNotifier", "extract_mentions", "normalize_handle"]
