"""Tally — community scoring and moderation engine.

Votes, reports, a moderation lifecycle, reputation and @mentions for a
platform of posts, reviews and comments.
"""

__version__ = "0.1.0"
