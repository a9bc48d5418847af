from pydantic import BaseModel


class Identity(BaseModel):
    uid: str
    is_anonymous: bool
    email: str | None = None


class SessionRequest(BaseModel):
    token: str | None = None


class CredentialsRequest(BaseModel):
    email: str
    password: str


class SessionResponse(BaseModel):
    token: str
    identity: Identity | None = None
    is_admin: bool = False


class CustomTokenRequest(BaseModel):
    uid: str
    email: str | None = None


class CustomTokenResponse(BaseModel):
    uid: str
    token: str
