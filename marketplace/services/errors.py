"""Typed failures raised by the service layer.

Every error is raised before the operation mutates anything; routers roll the
session back and the application-level handler renders ``status_code`` and
``code`` so clients can tell "refresh your view" (409) from "you may not do
this" (403).
"""


class MarketplaceError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(MarketplaceError):
    status_code = 422
    code = "validation_error"


class UnauthorizedError(MarketplaceError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(MarketplaceError):
    status_code = 403
    code = "forbidden"


class NotFoundError(MarketplaceError):
    status_code = 404
    code = "not_found"


class ConflictError(MarketplaceError):
    status_code = 409
    code = "conflict"
