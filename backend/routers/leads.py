# routers/leads.py — Leads of the caller's organisation
#
# The org comes from the verified token only; a body or path can never widen
# the scope to another tenant's partition.
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from auth import TokenClaims, get_current_claims
from context import AppContext, get_context

router = APIRouter(prefix="/leads", tags=["Leads"])


# --- Schemas ---

class StatusUpdate(BaseModel):
    status: str


class NoteCreate(BaseModel):
    content: str


# --- Endpoints ---

@router.post("")
async def create_lead(
    data: Dict[str, Any] = Body(...),
    claims: TokenClaims = Depends(get_current_claims),
    ctx: AppContext = Depends(get_context),
):
    """Create a lead; any extra scalar attributes are kept as custom fields"""
    lead = await ctx.leads.create_lead(claims.org_id, data)
    return lead.to_api()


@router.get("")
async def list_leads(
    claims: TokenClaims = Depends(get_current_claims),
    ctx: AppContext = Depends(get_context),
) -> List[Dict[str, Any]]:
    leads = await ctx.leads.list_leads(claims.org_id)
    return [lead.to_api() for lead in leads]


@router.get("/stats")
async def lead_stats(
    claims: TokenClaims = Depends(get_current_claims),
    ctx: AppContext = Depends(get_context),
):
    """Dashboard figures for the pipeline"""
    return await ctx.leads.pipeline_stats(claims.org_id)


@router.get("/{lead_id}")
async def get_lead(
    lead_id: str,
    claims: TokenClaims = Depends(get_current_claims),
    ctx: AppContext = Depends(get_context),
):
    lead = await ctx.leads.get_lead(claims.org_id, lead_id)
    return lead.to_api()


@router.put("/{lead_id}")
async def update_lead_status(
    lead_id: str,
    body: StatusUpdate,
    claims: TokenClaims = Depends(get_current_claims),
    ctx: AppContext = Depends(get_context),
):
    result = await ctx.leads.update_lead_status(claims.org_id, lead_id, body.status)
    return {"message": "Lead updated", **result}


@router.post("/{lead_id}/notes")
async def add_note(
    lead_id: str,
    body: NoteCreate,
    claims: TokenClaims = Depends(get_current_claims),
    ctx: AppContext = Depends(get_context),
):
    note = await ctx.leads.add_note(claims.org_id, lead_id, body.content)
    return note.to_dict()


@router.delete("/{lead_id}")
async def delete_lead(
    lead_id: str,
    claims: TokenClaims = Depends(get_current_claims),
    ctx: AppContext = Depends(get_context),
):
    await ctx.leads.delete_lead(claims.org_id, lead_id)
    return {"message": "Deleted"}
