"""
auth/errors.py -- Typed failures raised by the auth and access-control core.

Each error carries the HTTP status and machine-readable code it renders as, so
api/main.py can turn any of them into the shared ErrorResponse envelope with a
single exception handler. The service layer raises these; it never builds
HTTP responses itself.

Messages for credential failures are deliberately generic: an unknown email
and a wrong password produce the same InvalidCredentialsError text, so the
response cannot be used to enumerate accounts.

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class. Subclasses override status_code, code and message."""

    status_code: int = 500
    code: str = "internal_error"
    message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidInputError(AuthError):
    """Bad input shape or weak password."""

    status_code = 400
    code = "validation_error"
    message = "Invalid input."


class InvalidCredentialsError(AuthError):
    status_code = 401
    code = "bad_credentials"
    message = "Invalid email or password."


class UnauthenticatedError(AuthError):
    """No token, a bad token, or a revoked/expired session."""

    status_code = 401
    code = "unauthorized"
    message = "Authentication required."


class PendingApprovalError(AuthError):
    """Correct credentials, but the account has not been approved yet.

    Distinct from InvalidCredentialsError at the service layer. It is only
    raised after the password verified, so rendering it reveals nothing to a
    caller who does not already know the password.
    """

    status_code = 403
    code = "account_pending"
    message = "Account is awaiting administrator approval."


class ForbiddenError(AuthError):
    status_code = 403
    code = "forbidden"
    message = "You do not have permission to perform this action."


class NotAMemberError(ForbiddenError):
    code = "not_a_member"
    message = "Not a member of this project."


class InsufficientPermissionsError(ForbiddenError):
    code = "insufficient_permissions"
    message = "Insufficient permissions."


class NotFoundError(AuthError):
    status_code = 404
    code = "not_found"
    message = "Resource not found."


class AlreadyExistsError(AuthError):
    status_code = 409
    code = "conflict"
    message = "Resource already exists."


class OwnershipTransferRequiredError(AuthError):
    """The owner tried to leave their own project without handing it over."""

    status_code = 409
    code = "ownership_transfer_required"
    message = "The project owner must transfer ownership before leaving the project."
