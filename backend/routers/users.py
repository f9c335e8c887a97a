# routers/users.py — Team listing and member removal
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

import tenant_keys
from auth import TokenClaims, get_current_claims, require_admin
from context import AppContext, get_context
from errors import ValidationFailure

logger = logging.getLogger("pulse-crm.users")

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("")
async def list_users(
    claims: TokenClaims = Depends(get_current_claims),
    ctx: AppContext = Depends(get_context),
) -> List[Dict[str, Any]]:
    """Everyone in the caller's organisation; password hashes are never read"""
    users = await ctx.identity.list_users(claims.org_id)
    return [u.to_public() for u in users]


@router.delete("/{email}")
async def delete_user(
    email: str,
    admin: TokenClaims = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
):
    """Remove a member from the organisation (admins only, never yourself)"""
    target = tenant_keys.normalize_email(email)
    if target == tenant_keys.normalize_email(admin.email):
        raise ValidationFailure("You cannot delete your own account.")

    await ctx.identity.delete_user(admin.org_id, target)
    logger.info(f"User removed from org {admin.org_id} by {admin.user_id}")
    return {"message": "User deleted successfully"}
