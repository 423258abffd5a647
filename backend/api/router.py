from __future__ import annotations

from fastapi import APIRouter, Depends

from api.deps import require_admin
from api.routes import allocations, halls


api_router = APIRouter()

# Every route is admin-only.
_protected = [Depends(require_admin)]
api_router.include_router(halls.router, prefix="/halls", tags=["halls"], dependencies=_protected)
api_router.include_router(allocations.router, prefix="/allocations", tags=["allocations"], dependencies=_protected)
