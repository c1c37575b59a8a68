"""Transport-neutral request handlers and error envelopes."""

from .errors import format_error, status_for
from .handlers import RankingHandlers

__all__ = ["RankingHandlers", "format_error", "status_for"]
