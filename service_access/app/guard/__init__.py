"""
Navigation guard package.

Resolves the caller's session and role through the auth adapter and
decides, per path, whether to redirect to login, render an access-denied
view, or render the protected content.
"""

from .route_guard import AccessDeniedView, GuardDecision, GuardState, RouteGuard

__all__ = ["AccessDeniedView", "GuardDecision", "GuardState", "RouteGuard"]
