"""User directory and caller checks.

``tally.users.directory`` depends on the content package; import it
directly rather than through this package.
"""

from tally.users.access import require_active, require_caller, require_moderator

__all__ = ["require_active", "require_caller", "require_moderator"]
