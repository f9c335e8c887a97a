# routers/auth.py — Signup, login and password recovery
from fastapi import APIRouter, BackgroundTasks, Depends

import tenant_keys
from auth import (
    SignupRequest, LoginRequest, ForgotPasswordRequest, ResetPasswordRequest,
    TokenClaims, get_current_claims,
)
from context import AppContext, get_context
from errors import Unauthorized, ValidationFailure
from models import Organization, UserRole

router = APIRouter(prefix="/auth", tags=["Authentication"])

INVALID_LOGIN = "Invalid credentials or Organization ID"


@router.post("/signup", status_code=201)
async def signup(body: SignupRequest, ctx: AppContext = Depends(get_context)):
    """Create a workspace (orgName) or join an existing one (orgId)"""
    org_id = (body.orgId or "").strip()
    org_name = (body.orgName or "").strip()
    password_hash = ctx.credentials.hash_password(body.password)

    if org_id:
        # Joining: the org must already exist, and joiners are always members
        await ctx.identity.require_org(org_id)
        role = UserRole.MEMBER
        organization = None
    elif org_name:
        organization = Organization(name=org_name)
        org_id = organization.id
        role = UserRole.ADMIN
    else:
        raise ValidationFailure("Provide an Organization Name to create a workspace or an Organization ID to join one")

    user = await ctx.identity.register_user(
        org_id=org_id,
        email=body.email,
        name=body.name.strip(),
        password_hash=password_hash,
        role=role,
        organization=organization,
    )
    await ctx.notifier.send_welcome(user.email, user.name, org_id, role.value)

    return {"message": "Account created", "orgId": org_id, "role": role.value}


@router.post("/login")
async def login(
    body: LoginRequest,
    background: BackgroundTasks,
    ctx: AppContext = Depends(get_context),
):
    """Exchange email + password + org id for a bearer token"""
    email = tenant_keys.normalize_email(body.email)
    user = await ctx.identity.find_user(body.orgId.strip(), email)
    if user is None or not ctx.credentials.verify_password(body.password, user.password_hash):
        raise Unauthorized(INVALID_LOGIN)

    token = ctx.credentials.issue_token(
        user_id=user.user_id,
        org_id=user.org_id,
        role=user.role,
        name=user.name,
        email=user.email,
    )
    # Runs after the response is sent
    background.add_task(ctx.notifier.send_login_alert, user.email, user.name)

    return {
        "token": token,
        "user": {"name": user.name, "email": user.email, "role": user.role.value},
        "orgId": user.org_id,
    }


@router.get("/me")
async def me(claims: TokenClaims = Depends(get_current_claims)):
    return claims.to_public()


@router.post("/forgot-password")
async def forgot_password(body: ForgotPasswordRequest, ctx: AppContext = Depends(get_context)):
    await ctx.password_reset.request_reset(body.email)
    return {"message": "If that email is registered, a reset code has been sent."}


@router.post("/reset-password")
async def reset_password(body: ResetPasswordRequest, ctx: AppContext = Depends(get_context)):
    await ctx.password_reset.reset_password(body.email, body.code, body.newPassword)
    return {"message": "Password updated. You can now log in."}
