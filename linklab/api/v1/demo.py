from fastapi import APIRouter, Depends, HTTPException, status

from linklab.dependencies import get_link_service, get_owner_id
from linklab.exceptions import ShortCodeExhaustedError
from linklab.schemas.demo import (
    ClaimRequest,
    ClaimResponse,
    ClaimResult,
    DemoLinkResponse,
    DemoShortenRequest,
)
from linklab.services.link_service import LinkService

router = APIRouter(prefix="/demo", tags=["demo"])


@router.post("/shorten", response_model=DemoLinkResponse, status_code=status.HTTP_201_CREATED)
async def demo_shorten(
    payload: DemoShortenRequest,
    link_service: LinkService = Depends(get_link_service)
):
    """Shorten without an account. The link can be claimed after sign-in."""
    try:
        return await link_service.create_demo_link(str(payload.original_url))
    except ShortCodeExhaustedError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.post("/claim", response_model=ClaimResponse)
async def claim_demo_link(
    payload: ClaimRequest,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    """
    Attach an anonymous link to the signed-in account.

    A link that already has an owner is left untouched and reported as
    already_owned.
    """
    result = link_service.claim_unowned_link(payload.short_code, owner_id)
    if result == ClaimResult.NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Short link not found"
        )
    return ClaimResponse(short_code=payload.short_code, status=result)
