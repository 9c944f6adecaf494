# Overview: Error taxonomy shared by services and routes; each error carries its HTTP status.

"""
Every domain failure raised by the service layer is a StorefrontError.
Routes never translate these by hand: the app-level handler registered in
create_app() turns them into the {"status", "error"} envelope.

- ValidationError: missing/malformed input (400)
- AuthError: missing/invalid principal (401); ForbiddenError for 403
- NotFoundError: order/inventory/price row absent (404)
- SignatureError: HMAC/webhook/cipher verification failure (400)
- ConflictError: business-rule conflict such as insufficient stock (400)
- InternalError: unexpected storage or provider failure (500)
"""


class StorefrontError(Exception):
    status_code = 400

    def __init__(self, message: str = "", status_code: int | None = None):
        super().__init__(message)
        self.message = message or self.__class__.__name__
        if status_code is not None:
            self.status_code = status_code


class ValidationError(StorefrontError):
    """400-level input problem."""
    status_code = 400


class AuthError(StorefrontError):
    status_code = 401


class ForbiddenError(AuthError):
    status_code = 403


class NotFoundError(StorefrontError):
    status_code = 404


class SignatureError(StorefrontError):
    """Payment provider payload failed authenticity checks. Nothing was mutated."""
    status_code = 400


class ConflictError(StorefrontError):
    """Business rule conflict (insufficient stock, quantity increase, reused token)."""
    status_code = 400


class InternalError(StorefrontError):
    status_code = 500
