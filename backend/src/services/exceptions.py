"""Shared exceptions for service layer operations."""


class UserNotFoundError(Exception):
    """Raised when a user does not exist in the primary store."""

    def __init__(self, message: str = "User not found") -> None:
        super().__init__(message)


class UserValidationError(Exception):
    """
    Raised when input to a user query or command is malformed.

    Raised before the primary store is touched, e.g. a search term shorter
    than the minimum length.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)


class EmailAlreadyExistsError(Exception):
    """Raised when an email is already registered to another account."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__("User with this email already exists")


class InvalidCredentialsError(Exception):
    """Raised on failed login. The message never says which part was wrong."""

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(message)


class UserStoreError(Exception):
    """
    Raised when a primary store operation fails for reasons other than not-found.

    The message is generic ("Failed to retrieve user"); the underlying database
    error is logged where it is caught and chained as __cause__, never returned
    to API clients.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
