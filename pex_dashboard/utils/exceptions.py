"""Custom exception classes for the application."""


class BaseAppException(Exception):
    """Base exception class for all application exceptions."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(BaseAppException):
    """Raised when the document store is missing or misconfigured."""
    pass


class ValidationError(BaseAppException):
    """Raised when user input is rejected before any remote call."""
    pass


class InvalidExpiryDateError(ValidationError):
    """Raised when an expiry date is not a valid YYYY-MM-DD calendar date."""
    pass


class DuplicateEanError(ValidationError):
    """Raised when registering a catalog entry for an EAN already in use."""
    pass


class OversellError(ValidationError):
    """Raised when a sale asks for more units than the product has in stock."""
    pass


class ProductNotFoundError(BaseAppException):
    """Raised when a product id is not present in the current snapshot."""
    pass


class DocumentStoreError(BaseAppException):
    """Raised when a remote read, write or batch commit is rejected."""
    pass


class BatchTooLargeError(DocumentStoreError):
    """Raised when a batch holds more writes than the store accepts."""
    pass


class MigrationError(BaseAppException):
    """Raised when the one-time local snapshot migration cannot proceed."""
    pass


class ImportParseError(BaseAppException):
    """Raised when an uploaded backup file is malformed."""
    pass
