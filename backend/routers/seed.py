# routers/seed.py — Fill the caller's workspace with demo data
from fastapi import APIRouter, Depends

from auth import TokenClaims, get_current_claims
from context import AppContext, get_context
from seed_data import seed_organization

router = APIRouter(tags=["Demo data"])


@router.post("/seed")
async def seed(
    claims: TokenClaims = Depends(get_current_claims),
    ctx: AppContext = Depends(get_context),
):
    await seed_organization(ctx.store, claims.org_id)
    return {"message": "Test data injected successfully!"}
