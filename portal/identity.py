"""Redis-backed identity provider.

Sessions are opaque bearer tokens pointing at a user id. A user is either
anonymous or credentialed (email/password, or a custom token minted for a
uid). Every change to what a session resolves to is published on the
session's bus channel, which ``/ws/identity`` relays to the client.

Keys (all under ``portal:{namespace}:auth:``):
    session:{token}       -> uid
    user:{uid}            -> hash(is_anonymous, email, created_at)
    account:{email}       -> hash(uid, salt, password_hash, created_at)
    custom_token:{token}  -> uid
"""

import hashlib
import hmac
import logging
import re
import secrets
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from portal.bus import EventBus
from portal.config import AuthSettings
from portal.errors import AuthError, ServiceUnavailableError
from portal.events import IdentityPayload
from portal.models.auth import Identity

logger = logging.getLogger("portal.identity")

PBKDF2_ITERATIONS = 200_000
EMAIL_RE = re.compile(r"^[^@\s/]+@[^@\s/]+\.[^@\s/]+$")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_uid() -> str:
    return secrets.token_hex(14)


def hash_password(password: str, salt: str | None = None) -> tuple[str, str]:
    """Return ``(salt, digest)`` for a password, both hex encoded."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), bytes.fromhex(salt), PBKDF2_ITERATIONS)
    return salt, digest.hex()


def verify_password(password: str, salt: str, digest: str) -> bool:
    return hmac.compare_digest(hash_password(password, salt)[1], digest)


def is_admin(identity: Identity | None, admin_emails: frozenset[str] = frozenset()) -> bool:
    """Any credentialed identity is an admin unless an allowlist narrows it."""
    if identity is None or identity.is_anonymous:
        return False
    if not admin_emails:
        return True
    return (identity.email or "").lower() in admin_emails


@dataclass
class AuthSession:
    token: str
    identity: Identity | None


@asynccontextmanager
async def _provider_errors(op: str):
    try:
        yield
    except RedisError as e:
        logger.warning("identity.%s unavailable err=%r", op, e)
        raise ServiceUnavailableError(detail="Identity provider unavailable") from e


class IdentityProvider:
    def __init__(self, redis_client: redis.Redis, bus: EventBus, namespace: str, settings: AuthSettings):
        self.redis_client = redis_client
        self.bus = bus
        self.namespace = namespace
        self.settings = settings

    def _key(self, kind: str, name: str) -> str:
        return f"portal:{self.namespace}:auth:{kind}:{name}"

    def is_admin(self, identity: Identity | None) -> bool:
        return is_admin(identity, self.settings.admin_emails)

    async def current_identity(self, session: str) -> Identity | None:
        async with _provider_errors("current_identity"):
            uid = await self.redis_client.get(self._key("session", session))
            if not uid:
                return None
            return await self._load_identity(uid)

    async def sign_in_anonymous(self, session: str | None = None) -> AuthSession:
        uid = _new_uid()
        async with _provider_errors("sign_in_anonymous"):
            await self.redis_client.hset(
                self._key("user", uid), mapping={"is_anonymous": "1", "created_at": str(_now_ms())}
            )
        return await self._bind(session, Identity(uid=uid, is_anonymous=True))

    async def sign_in_with_token(self, token: str, session: str | None = None) -> AuthSession:
        """Sign in with a custom token, falling back to an anonymous session."""
        try:
            async with _provider_errors("sign_in_with_token"):
                uid = await self.redis_client.get(self._key("custom_token", token)) if token else None
                identity = await self._load_identity(uid) if uid else None
            if identity is None:
                raise AuthError(detail="Invalid custom token", error_code="INVALID_CUSTOM_TOKEN")
        except AuthError as e:
            logger.warning("identity.token_sign_in failed, proceeding anonymously: %s", e.detail)
            return await self.sign_in_anonymous(session)
        return await self._bind(session, identity)

    async def sign_in_with_credentials(self, email: str, password: str, session: str | None = None) -> AuthSession:
        normalized = email.strip().lower()
        async with _provider_errors("sign_in_with_credentials"):
            account = await self.redis_client.hgetall(self._key("account", normalized)) if normalized else {}
        if not account or "password_hash" not in account:
            raise AuthError(detail="Invalid email or password", error_code="INVALID_CREDENTIALS")
        if not verify_password(password, account["salt"], account["password_hash"]):
            raise AuthError(detail="Invalid email or password", error_code="INVALID_CREDENTIALS")
        identity = Identity(uid=account["uid"], is_anonymous=False, email=normalized)
        return await self._bind(session, identity)

    async def register_credentials(self, email: str, password: str, session: str | None = None) -> AuthSession:
        normalized = email.strip().lower()
        if not EMAIL_RE.match(normalized):
            raise AuthError(detail="Invalid email address", error_code="INVALID_EMAIL")
        if len(password) < self.settings.min_password_length:
            raise AuthError(
                detail=f"Password should be at least {self.settings.min_password_length} characters",
                error_code="WEAK_PASSWORD",
            )
        uid = _new_uid()
        salt, digest = hash_password(password)
        now = str(_now_ms())
        account_key = self._key("account", normalized)
        async with _provider_errors("register_credentials"):
            # Account and user are written together or not at all.
            async with self.redis_client.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(account_key)
                    if await pipe.exists(account_key):
                        raise AuthError(detail="Email already in use", error_code="EMAIL_IN_USE")
                    pipe.multi()
                    pipe.hset(
                        account_key,
                        mapping={"uid": uid, "salt": salt, "password_hash": digest, "created_at": now},
                    )
                    pipe.hset(
                        self._key("user", uid),
                        mapping={"is_anonymous": "0", "email": normalized, "created_at": now},
                    )
                    await pipe.execute()
                except WatchError as e:
                    raise AuthError(detail="Email already in use", error_code="EMAIL_IN_USE") from e
        logger.info("identity.registered uid=%s", uid)
        return await self._bind(session, Identity(uid=uid, is_anonymous=False, email=normalized))

    async def sign_out(self, session: str) -> None:
        async with _provider_errors("sign_out"):
            removed = await self.redis_client.delete(self._key("session", session))
        if removed:
            await self._publish(session, None)

    async def mint_custom_token(self, uid: str, email: str | None = None) -> str:
        """Issue a custom token for ``uid``, creating the user if needed."""
        token = secrets.token_urlsafe(32)
        user_key = self._key("user", uid)
        async with _provider_errors("mint_custom_token"):
            if not await self.redis_client.exists(user_key):
                mapping = {"is_anonymous": "0", "created_at": str(_now_ms())}
                if email:
                    mapping["email"] = email.strip().lower()
                await self.redis_client.hset(user_key, mapping=mapping)
            await self.redis_client.set(self._key("custom_token", token), uid)
        return token

    async def _load_identity(self, uid: str) -> Identity | None:
        user = await self.redis_client.hgetall(self._key("user", uid))
        if not user:
            return None
        return Identity(uid=uid, is_anonymous=user.get("is_anonymous") == "1", email=user.get("email") or None)

    async def _bind(self, session: str | None, identity: Identity) -> AuthSession:
        ttl = self.settings.session_ttl_sec or None
        async with _provider_errors("bind"):
            # Only reuse a token the provider issued and that is still live.
            if session and await self.redis_client.exists(self._key("session", session)):
                token = session
            else:
                token = secrets.token_urlsafe(32)
            await self.redis_client.set(self._key("session", token), identity.uid, ex=ttl)
        logger.info("identity.changed uid=%s anonymous=%s", identity.uid, identity.is_anonymous)
        await self._publish(token, identity)
        return AuthSession(token=token, identity=identity)

    def payload(self, identity: Identity | None) -> IdentityPayload | None:
        if identity is None:
            return None
        return {
            "uid": identity.uid,
            "is_anonymous": identity.is_anonymous,
            "email": identity.email,
            "is_admin": self.is_admin(identity),
        }

    async def _publish(self, session: str, identity: Identity | None) -> None:
        async with _provider_errors("publish"):
            await self.bus.publish_identity(session, {"type": "identity_changed", "identity": self.payload(identity)})
