"""
Error taxonomy for the API.

Every error carries the HTTP status the route layer answers with and a short
message that is safe to show to clients.
"""


class ShopError(Exception):
    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ShopError):
    status_code = 400
    default_message = "Missing required fields"


class DuplicateEmail(ShopError):
    status_code = 400
    default_message = "Email already registered"


class InvalidCredentials(ShopError):
    status_code = 400
    default_message = "Invalid email or password"


class NotFound(ShopError):
    status_code = 404
    default_message = "Not found"


class EmptyCart(ShopError):
    status_code = 400
    default_message = "Cart is empty"


class Unauthenticated(ShopError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(ShopError):
    status_code = 403
    default_message = "You do not have permission to perform this action"


class InternalError(ShopError):
    status_code = 500
    default_message = "Internal server error"


# Token verification failures all surface as 401

class TokenError(Unauthenticated):
    default_message = "Invalid token"


class Malformed(TokenError):
    default_message = "Malformed token"


class Expired(TokenError):
    default_message = "Token has expired"


class BadSignature(TokenError):
    default_message = "Invalid token signature"
