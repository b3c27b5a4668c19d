"""
Domain exceptions raised by the CRUD layer.

``main`` maps each of them onto an HTTP status and the standard
``{success: false, error}`` body.
"""


class ContactsError(Exception):
    """Base exception for contact and group operations"""

    status_code = 500

    def __init__(self, message: str, errors: list | None = None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class InvalidRequestError(ContactsError):
    """Raised when a request is well-formed JSON but not acceptable"""

    status_code = 400


class NotFoundError(ContactsError):
    """Raised when an identifier does not resolve to a record"""

    status_code = 404


class ConflictError(ContactsError):
    """Raised when a group name is already taken"""

    status_code = 400
