"""
Adapters package for the Access Service.

Contains the HTTP client for the external auth provider. Adapters
encapsulate base URLs and request shapes, circuit breaking, and error
handling that maps onto shared errors.
"""

from .auth_client import (
    BearerAuthContext,
    Profile,
    ProfileLookup,
    Session,
    SessionLookup,
    SupabaseAuthClient,
)

__all__ = [
    "BearerAuthContext",
    "Profile",
    "ProfileLookup",
    "Session",
    "SessionLookup",
    "SupabaseAuthClient",
]
