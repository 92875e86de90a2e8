"""
Custom exceptions for the ranked arena with user-friendly error messages.
"""

class ArenaError(Exception):
    """Base exception for arena errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class NotFoundError(ArenaError):
    """Raised when a referenced document is absent."""
    pass

class ProfileNotFoundError(NotFoundError):
    """Raised when a user profile does not exist."""
    def __init__(self, user_id: str):
        super().__init__(
            f"Profile for user '{user_id}' not found",
            "User profile not found. Please sign in again."
        )
        self.user_id = user_id

class PermissionDeniedError(ArenaError):
    """Raised when the acting user may not write the target document."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message, user_message)

class StorageError(ArenaError):
    """Raised when a storage operation fails."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Storage error during {operation}: {details}",
            f"Storage error: {details}" if details else "Storage error occurred. Please try again later."
        )
        self.operation = operation
        self.details = details

class ValidationError(ArenaError):
    """Raised when input is rejected before reaching storage."""
    pass
