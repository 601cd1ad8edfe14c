from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.deps import FirmContext, require_firm
from app.schemas.me import MeResponse
from app.services.visibility import is_full_access

router = APIRouter(tags=["me"])


@router.get("/me", response_model=MeResponse)
def me(ctx: FirmContext = Depends(require_firm)) -> MeResponse:
    return MeResponse(
        user=ctx.user,
        firm=ctx.firm,
        role=ctx.role,
        full_access=is_full_access(ctx.role),
    )
