"""Dependency injection for FastAPI endpoints.

This module provides FastAPI dependencies for accessing shared resources
(the document store and the identity provider) and for resolving the
caller's identity from the ``Authorization: Bearer`` session token.

Usage in controllers:
    from portal.dependencies import AdminIdentity, Store

    @router.post("/events")
    async def create(req: EventCreateRequest, store: Store, admin: AdminIdentity):
        ...
"""

from typing import Annotated

from fastapi import Depends, Header

from portal import state
from portal.errors import AuthError, ForbiddenError, ServiceUnavailableError
from portal.identity import IdentityProvider
from portal.models.auth import Identity
from portal.store import DocumentStore


def get_store() -> DocumentStore:
    """Get the document store.

    Raises:
        ServiceUnavailableError: If the store is not initialized.
    """
    if state.store is None:
        raise ServiceUnavailableError(detail="Document store not initialized")
    return state.store


def get_identity_provider() -> IdentityProvider:
    """Get the identity provider.

    Raises:
        ServiceUnavailableError: If the provider is not initialized.
    """
    if state.identity_provider is None:
        raise ServiceUnavailableError(detail="Identity provider not initialized")
    return state.identity_provider


def get_session_token(authorization: Annotated[str | None, Header()] = None) -> str | None:
    """Extract the bearer session token, if any."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_identity(
    token: Annotated[str | None, Depends(get_session_token)],
    provider: Annotated[IdentityProvider, Depends(get_identity_provider)],
) -> Identity | None:
    """Resolve the caller's identity; None for callers without a live session."""
    if token is None:
        return None
    return await provider.current_identity(token)


async def require_admin(
    identity: Annotated[Identity | None, Depends(get_identity)],
    provider: Annotated[IdentityProvider, Depends(get_identity_provider)],
) -> Identity:
    """Require an admin identity.

    Raises:
        AuthError: No signed-in identity.
        ForbiddenError: The identity is not an admin.
    """
    if identity is None:
        raise AuthError(detail="Sign in required")
    if not provider.is_admin(identity):
        raise ForbiddenError(detail="Only admins can do this")
    return identity


Store = Annotated[DocumentStore, Depends(get_store)]
Identities = Annotated[IdentityProvider, Depends(get_identity_provider)]
SessionToken = Annotated[str | None, Depends(get_session_token)]
CurrentIdentity = Annotated[Identity | None, Depends(get_identity)]
AdminIdentity = Annotated[Identity, Depends(require_admin)]
