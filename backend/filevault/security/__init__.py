# Re-export security primitives from a single namespace.
from .auth import AuthPrincipal, require_user

__all__ = ["AuthPrincipal", "require_user"]
