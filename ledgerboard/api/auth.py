"""API key authentication dependency."""
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException

from ledgerboard.exceptions import StoreError
from ledgerboard.models import Company
from ledgerboard.store import CompanyStore, get_store

logger = logging.getLogger(__name__)


async def get_company_by_key(
    x_api_key: Optional[str] = Header(None, max_length=64),
    store: CompanyStore = Depends(get_store),
) -> Company:
    """Validate X-API-Key header and return the matching active company."""
    if not x_api_key:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        company = await store.find_by_api_key(x_api_key)
    except StoreError as e:
        # Reads degrade to "not found"
        logger.error("API key lookup unavailable: %s", e.message)
        company = None
    if not company:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return company
