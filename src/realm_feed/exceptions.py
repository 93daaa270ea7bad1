"""
Exceptions for the Realm feed.

Every failure the feed core can produce is a RealmFeedError carrying an
HTTP-like code, so the API layer can map it to a response without knowing
which component raised it.
"""
from typing import Optional


class RealmFeedError(Exception):
    """Base exception for all Realm feed errors."""

    def __init__(self, message: str, code: int = 500, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "error_code": self.code,
            "error_message": self.message,
            "retryable": self.retryable,
        }


class MalformedData(RealmFeedError):
    """400 - Bad cursor or an invalid combination of pagination arguments."""

    def __init__(self, message: str = "Malformed data"):
        super().__init__(message, code=400)


class UnsupportedDevnet(RealmFeedError):
    """400 - Operation attempted on a restricted environment."""

    def __init__(self, message: str = "This operation is not supported on devnet"):
        super().__init__(message, code=400)


class Unauthorized(RealmFeedError):
    """403 - The action requires an authenticated member."""

    def __init__(self, message: str = "You are not authorized to perform that action"):
        super().__init__(message, code=403)


class NotFound(RealmFeedError):
    """404 - Referenced feed item or its payload does not exist."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, code=404)


class FeedException(RealmFeedError):
    """500 - Opaque wrapper around a storage or provider failure."""

    def __init__(self, error: Optional[object] = None, code: int = 500):
        detail = str(error) if error is not None else "unknown error"
        super().__init__(f"Internal server error: {detail}", code=code, retryable=True)
        self.detail = detail


class StaleWrite(FeedException):
    """409 - A feed item changed between read and write."""

    def __init__(self, feed_item_id: Optional[int] = None):
        message = (
            f"Feed item {feed_item_id} was modified concurrently"
            if feed_item_id is not None
            else "Feed item was modified concurrently"
        )
        super().__init__(message, code=409)
