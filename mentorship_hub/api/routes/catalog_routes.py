"""
Catalog Routes

GET /catalog/domains - Domain filter options ("All Domains" first)
GET /catalog/stacks  - Stack filter options for a domain ("All Stacks" first)
"""

from typing import List

from fastapi import APIRouter, Depends, Query

from mentorship_hub.schemas.schemas import ALL_DOMAINS
from mentorship_hub.services.catalog_service import CatalogResolver
from mentorship_hub.services.session import get_catalog

router = APIRouter(prefix="/catalog", tags=["Catalog"])


@router.get("/domains", response_model=List[str])
async def list_domains(catalog: CatalogResolver = Depends(get_catalog)):
    """Domain options. Sentinel only if the catalog could not be loaded."""
    await catalog.load()
    return catalog.list_domains()


@router.get("/stacks", response_model=List[str])
async def list_stacks(
    domain: str = Query(ALL_DOMAINS),
    catalog: CatalogResolver = Depends(get_catalog),
):
    """Stack options scoped to `domain`; just "All Stacks" for all domains."""
    await catalog.load()
    return catalog.list_stacks(domain)
