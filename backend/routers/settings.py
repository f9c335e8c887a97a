# routers/settings.py — Per-org custom field schema
from typing import List

from fastapi import APIRouter, Body, Depends

from auth import TokenClaims, get_current_claims
from context import AppContext, get_context
from models import FieldDefinition

router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get("/fields", response_model=List[FieldDefinition])
async def get_fields(
    claims: TokenClaims = Depends(get_current_claims),
    ctx: AppContext = Depends(get_context),
):
    return await ctx.field_settings.get_settings(claims.org_id)


@router.post("/fields")
async def save_fields(
    fields: List[FieldDefinition] = Body(...),
    claims: TokenClaims = Depends(get_current_claims),
    ctx: AppContext = Depends(get_context),
):
    """Replace the org's field schema with the submitted list"""
    await ctx.field_settings.save_settings(claims.org_id, fields)
    return {"message": "Saved"}
