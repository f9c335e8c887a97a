# auth.py — Credentials and the authorization gate for Pulse CRM
# Features:
# - bcrypt password hashing (fixed cost factor)
# - HS256 JWT bearer tokens carrying tenant + role claims, 1 day lifetime
# - FastAPI dependencies: token gate and role gate
#
# The token is the only thing carrying tenant scope between requests; every
# resource operation trusts claims.org_id, so the secret never leaves the server.

import uuid
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Union

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field, field_validator

from errors import Unauthorized, Forbidden, ValidationFailure
from models import UserRole

logger = logging.getLogger("pulse-crm.auth")

# ============================================================
# CONFIGURATION
# ============================================================

ALGORITHM = "HS256"
TOKEN_LIFETIME = timedelta(days=1)
BCRYPT_ROUNDS = 10
# bcrypt only looks at the first 72 bytes and newer releases reject longer input
MAX_PASSWORD_BYTES = 72

security = HTTPBearer(auto_error=False)


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

def _check_password(v: str) -> str:
    if not v:
        raise ValueError("Password is required")
    if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return v


class SignupRequest(BaseModel):
    email: EmailStr
    password: str
    name: str = Field(..., min_length=1, max_length=200)
    orgName: Optional[str] = Field(default=None, max_length=200)
    orgId: Optional[str] = None

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    orgId: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=1, max_length=20)
    newPassword: str

    @field_validator("newPassword")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        return _check_password(v)


class TokenClaims(BaseModel):
    user_id: str
    org_id: str
    role: UserRole
    name: str = ""
    email: str = ""
    jti: Optional[str] = None
    expires_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def to_public(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "orgId": self.org_id,
            "role": self.role.value,
            "name": self.name,
            "email": self.email,
        }


# ============================================================
# CREDENTIAL SERVICE
# ============================================================

class CredentialService:
    """Password hashing and token issuance/verification bound to one secret"""

    def __init__(self, secret: str, token_lifetime: timedelta = TOKEN_LIFETIME):
        if not secret:
            raise ValueError("A signing secret is required")
        self._secret = secret
        self.token_lifetime = token_lifetime

    @staticmethod
    def hash_password(password: str) -> str:
        try:
            _check_password(password)
        except ValueError as e:
            raise ValidationFailure(str(e))
        salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: Optional[str]) -> bool:
        if not password or not password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            # Not a bcrypt hash (e.g. seeded demo users) or an over-long password
            return False

    def issue_token(
        self,
        user_id: str,
        org_id: str,
        role: Union[UserRole, str],
        name: str,
        email: str = "",
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        now = datetime.now(timezone.utc)
        to_encode = {
            "userId": user_id,
            "orgId": org_id,
            "role": UserRole(role).value,
            "name": name,
            "email": email,
            "iat": now,
            "exp": now + (expires_delta if expires_delta is not None else self.token_lifetime),
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(to_encode, self._secret, algorithm=ALGORITHM)

    def verify_token(self, token: Optional[str]) -> TokenClaims:
        if not token:
            raise Unauthorized("Missing token")
        try:
            payload = jwt.decode(token, self._secret, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise Unauthorized("Token expired")
        except JWTError:
            raise Unauthorized("Invalid token")

        try:
            exp = payload.get("exp")
            return TokenClaims(
                user_id=payload["userId"],
                org_id=payload["orgId"],
                role=payload["role"],
                name=payload.get("name") or "",
                email=payload.get("email") or "",
                jti=payload.get("jti"),
                expires_at=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
            )
        except (KeyError, TypeError, ValueError):
            raise Unauthorized("Invalid token")


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_claims(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TokenClaims:
    """Authorization gate: no verified token, no store access"""
    if credentials is None:
        raise Unauthorized("Missing bearer token")
    claims = request.app.state.context.credentials.verify_token(credentials.credentials)
    request.state.org_id = claims.org_id
    request.state.user_id = claims.user_id
    return claims


def require_role(*roles: UserRole):
    """Dependency factory: require the token's role to be one of roles"""
    async def _check(claims: TokenClaims = Depends(get_current_claims)) -> TokenClaims:
        if claims.role not in roles:
            allowed = " or ".join(r.value for r in roles)
            logger.warning(f"Role check failed for user {claims.user_id}: {claims.role.value} not in {allowed}")
            raise Forbidden(f"Access Denied: requires {allowed} role.")
        return claims
    return _check


require_admin = require_role(UserRole.ADMIN)
