import logging
from typing import Any, Dict

from fastapi import APIRouter

from portal.dependencies import AdminIdentity, CurrentIdentity, Identities, SessionToken
from portal.errors import AuthError, ValidationError
from portal.identity import AuthSession, IdentityProvider
from portal.models.auth import (
    CredentialsRequest,
    CustomTokenRequest,
    CustomTokenResponse,
    SessionRequest,
    SessionResponse,
)

logger = logging.getLogger("portal.auth")
router = APIRouter(prefix="/auth")


def _session_response(provider: IdentityProvider, session: AuthSession) -> SessionResponse:
    return SessionResponse(
        token=session.token,
        identity=session.identity,
        is_admin=provider.is_admin(session.identity),
    )


@router.post("/session")
async def start_session(
    provider: Identities,
    token: SessionToken,
    req: SessionRequest | None = None,
) -> SessionResponse:
    """Open (or resume) a session.

    A custom token in the body, or the configured initial token, is tried
    first; failing that the session is anonymous.
    """
    custom_token = (req.token if req else None) or provider.settings.initial_token
    if token and not (req and req.token):
        current = await provider.current_identity(token)
        if current is not None:
            return _session_response(provider, AuthSession(token=token, identity=current))
    if custom_token:
        session = await provider.sign_in_with_token(custom_token, token)
    else:
        session = await provider.sign_in_anonymous(token)
    return _session_response(provider, session)


@router.post("/login")
async def login(req: CredentialsRequest, provider: Identities, token: SessionToken) -> SessionResponse:
    session = await provider.sign_in_with_credentials(req.email, req.password, token)
    logger.info("auth.login uid=%s admin=%s", session.identity.uid, provider.is_admin(session.identity))
    return _session_response(provider, session)


@router.post("/register", status_code=201)
async def register_admin(req: CredentialsRequest, provider: Identities, token: SessionToken) -> SessionResponse:
    session = await provider.register_credentials(req.email, req.password, token)
    return _session_response(provider, session)


@router.post("/logout")
async def logout(provider: Identities, token: SessionToken) -> Dict[str, Any]:
    if token is None:
        raise AuthError(detail="No session to sign out of")
    await provider.sign_out(token)
    return {"signed_out": True}


@router.get("/me")
async def me(identity: CurrentIdentity, provider: Identities) -> Dict[str, Any]:
    return {
        "identity": identity.model_dump() if identity else None,
        "is_admin": provider.is_admin(identity),
    }


@router.post("/custom-token", status_code=201)
async def mint_custom_token(
    req: CustomTokenRequest, provider: Identities, admin: AdminIdentity
) -> CustomTokenResponse:
    """Issue a token that ``POST /auth/session`` (or AUTH_INITIAL_TOKEN) signs in with."""
    uid = req.uid.strip()
    if not uid or ":" in uid:
        raise ValidationError(detail="uid must be non-empty and contain no ':'", field="uid")
    token = await provider.mint_custom_token(uid, email=req.email)
    logger.info("auth.custom_token uid=%s by=%s", uid, admin.uid)
    return CustomTokenResponse(uid=uid, token=token)
