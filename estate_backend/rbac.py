"""
estate_backend/rbac.py

Role-based authorization gate and ownership checks.

The gate is a fixed two-step decision table:
  1. no identity            -> 401
  2. role not in allowed    -> 403
  3. otherwise the handler receives the AuthContext
"""

from typing import Any, Callable, Dict, Iterable, Optional

from fastapi import Depends

from estate_backend.auth_context import AuthContext, resolve_identity
from estate_backend.config import IS_DEV
from estate_backend.errors import ApiError, ErrorKind
from estate_backend.models import Role


def require_role(*roles: Role) -> Callable:
    """
    FastAPI dependency factory for role gating.

    Usage in routes:
        @router.get("/leases")
        def list_leases(ctx: AuthContext = Depends(require_role(Role.landlord))):
            ...

    Raises:
        ApiError(401): If the request carries no identity
        ApiError(403): If the identity's role is not one of `roles`
    """
    allowed = frozenset(roles)

    def _check_role(identity: Optional[AuthContext] = Depends(resolve_identity)) -> AuthContext:
        if identity is None:
            raise ApiError(ErrorKind.AUTHENTICATION, "Authentication required")

        if identity.role not in allowed:
            print(f"[AUTHZ] Role denied: user_id={identity.user_id}, role={identity.role.value}, "
                  f"required={sorted(r.value for r in allowed)}")
            raise ApiError(
                ErrorKind.AUTHORIZATION,
                f"Insufficient permissions - {' or '.join(sorted(r.value for r in allowed))} role required",
            )

        if IS_DEV:
            print(f"[AUTHZ] Role granted: user_id={identity.user_id}, role={identity.role.value}")
        return identity

    return _check_role


def is_owner(doc: Dict[str, Any], ctx: AuthContext, field: str = "owner") -> bool:
    value = doc.get(field)
    return value is not None and str(value) == ctx.user_id


def require_owner(doc: Dict[str, Any], ctx: AuthContext, field: str = "owner", label: str = "resource") -> None:
    """
    Ownership check for mutating verbs.

    Admins pass; everyone else must match the document's owner field.
    """
    if ctx.role == Role.admin or is_owner(doc, ctx, field):
        return
    print(f"[AUTHZ] Ownership denied: user_id={ctx.user_id}, {label}={doc.get('_id')}")
    raise ApiError(ErrorKind.AUTHORIZATION, f"You are not authorized to modify this {label}")


def require_any_owner(doc: Dict[str, Any], ctx: AuthContext, fields: Iterable[str], label: str = "resource") -> None:
    """Pass if the caller matches any of the given back-reference fields."""
    if ctx.role == Role.admin or any(is_owner(doc, ctx, f) for f in fields):
        return
    print(f"[AUTHZ] Access denied: user_id={ctx.user_id}, {label}={doc.get('_id')}")
    raise ApiError(ErrorKind.AUTHORIZATION, "Access denied")
