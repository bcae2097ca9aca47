from typing import Dict, List

from fastapi import APIRouter, HTTPException

from esshims.models import CatalogData
from esshims.services.mappings import get_catalog, get_compat_data

router = APIRouter(prefix="/api/polyfills", tags=["polyfills"])

@router.get("", response_model=CatalogData)
async def list_polyfills():
    """
    The descriptor catalog: which globals, static members and instance
    members map to which es-shims packages.
    """
    return get_catalog().to_data()

@router.get("/names", response_model=List[str])
async def list_polyfill_names():
    return get_catalog().names()

@router.get("/compat/{name}", response_model=Dict[str, str])
async def get_polyfill_compat(name: str):
    """First engine versions that ship `name` natively."""
    compat = get_compat_data()
    if name not in compat:
        raise HTTPException(status_code=404, detail="Polyfill not found")
    return compat[name]
