"""Request-scoped context (request, tenant and operator ids)."""

from contextvars import ContextVar
from typing import Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
tenant_id_var: ContextVar[Optional[int]] = ContextVar("tenant_id", default=None)
operator_id_var: ContextVar[Optional[int]] = ContextVar("operator_id", default=None)


def set_request_id(request_id: str | None) -> None:
    """Set the id of the request being handled."""
    request_id_var.set(request_id)


def get_request_id() -> str | None:
    """Get the id of the request being handled."""
    return request_id_var.get()


def set_tenant_context(tenant_id: int | None) -> None:
    """Set the current tenant context.

    Args:
        tenant_id: Tenant ID to set in context
    """
    tenant_id_var.set(tenant_id)


def get_tenant_context() -> int | None:
    """Get the current tenant context.

    Returns:
        Current tenant ID or None
    """
    return tenant_id_var.get()


def set_operator_context(operator_id: int | None) -> None:
    """Set the operator acting in the current request."""
    operator_id_var.set(operator_id)


def get_operator_context() -> int | None:
    """Get the operator acting in the current request."""
    return operator_id_var.get()


def clear_request_context() -> None:
    """Clear every request-scoped value."""
    request_id_var.set(None)
    tenant_id_var.set(None)
    operator_id_var.set(None)
