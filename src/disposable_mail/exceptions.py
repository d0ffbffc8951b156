"""Custom exceptions for the Disposable Mail client."""


class DisposableMailError(Exception):
    """Base exception for all Disposable Mail errors."""


class StorageUnavailable(DisposableMailError):
    """Exception raised when the local database cannot be opened or used."""


class MalformedRemoteMessage(DisposableMailError):
    """Exception raised for provider inbox items missing a sender or timestamp.

    The inbox reconciler catches this and skips the item; it never reaches
    callers of the public API.
    """


class NetworkError(DisposableMailError):
    """Base exception for recoverable provider communication failures."""


class NetworkTimeout(NetworkError):
    """Exception raised when a provider request exceeds its timeout."""


class NetworkFailure(NetworkError):
    """Exception raised for non-2xx, non-JSON or unsuccessful provider responses."""


class ConfigurationError(DisposableMailError):
    """Exception raised for configuration related errors."""


class ValidationError(DisposableMailError):
    """Exception raised for data validation errors."""


class BackupFormatError(ValidationError):
    """Exception raised when a backup document lacks its version or data section."""


class AccountNotFoundError(DisposableMailError):
    """Exception raised when an operation names an unknown account."""


class MessageNotFoundError(DisposableMailError):
    """Exception raised when an operation names a message the account does not hold."""


class TombstonedMessageError(ValidationError):
    """Exception raised when saving a message id that was permanently deleted."""
