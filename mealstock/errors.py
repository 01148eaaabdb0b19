"""Domain errors raised by mealstock services.

Routers let these propagate; `main.py` maps them onto HTTP responses.
Normalization misses and partial matches are never errors.
"""

from typing import Optional


class MealstockError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, detail: str, *, context: Optional[dict] = None):
        super().__init__(detail)
        self.detail = detail
        self.context = context or {}

    def to_dict(self) -> dict:
        body = {"detail": self.detail, "code": self.code}
        if self.context:
            body["context"] = self.context
        return body


class NotAuthenticatedError(MealstockError):
    status_code = 401
    code = "not_authenticated"


class NotFoundError(MealstockError):
    status_code = 404
    code = "not_found"


class ConflictError(MealstockError):
    status_code = 409
    code = "conflict"


class ConcurrentUpdateError(ConflictError):
    code = "concurrent_update"


class ValidationError(MealstockError):
    status_code = 422
    code = "invalid"


def require_tenant(workspace_id: Optional[str]) -> str:
    """Fail fast when a service is called without a resolved tenant."""
    if not workspace_id or not str(workspace_id).strip():
        raise NotAuthenticatedError("A workspace is required for this operation")
    return str(workspace_id)
