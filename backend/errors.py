# errors.py — Error taxonomy shared by the store, services and routers
# Each error carries the HTTP status it maps to; main.py turns them into JSON.


class CRMError(Exception):
    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: str = "", status_code: int = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class Unauthorized(CRMError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(Unauthorized):
    """Authenticated, but the role does not allow the operation"""
    status_code = 403
    default_message = "Access denied"


class NotFound(CRMError):
    status_code = 404
    default_message = "Not found"


class DuplicateIdentity(CRMError):
    status_code = 409
    default_message = "This email is already registered."


class ValidationFailure(CRMError):
    status_code = 400
    default_message = "Invalid request"


class DependencyFailure(CRMError):
    status_code = 500
    default_message = "A backing service failed"
