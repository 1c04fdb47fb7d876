import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from linklab.dependencies import get_link_service, get_owner_id
from linklab.exceptions import AliasConflictError, InvalidAliasError, ShortCodeExhaustedError
from linklab.schemas.link import LinkCreate, LinkList, LinkResponse, LinkStats, LinkUpdate
from linklab.services.link_service import LinkService

router = APIRouter(prefix="/links", tags=["links"])


@router.post("/", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def create_link(
    link_data: LinkCreate,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    """Create a short link, with a custom alias or a generated code"""
    try:
        return await link_service.create_link(link_data, owner_id)
    except InvalidAliasError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except AliasConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ShortCodeExhaustedError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.get("/", response_model=LinkList)
async def list_links(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, description="Match title, destination or short code"),
    campaign_id: Optional[int] = Query(None),
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    links, total = link_service.list_links(
        owner_id, page=page, limit=limit, search=search, campaign_id=campaign_id
    )
    return LinkList(
        links=[LinkResponse.model_validate(link) for link in links],
        page=page,
        limit=limit,
        total=total,
        pages=math.ceil(total / limit),
    )


@router.get("/{short_code}", response_model=LinkResponse)
async def get_link(
    short_code: str,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    link = link_service.get_link(short_code, owner_id)
    if not link:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Short link not found"
        )
    return link


@router.patch("/{short_code}", response_model=LinkResponse)
async def update_link(
    short_code: str,
    changes: LinkUpdate,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    """Update title, expiry, click limit or active flag. The short code itself is immutable."""
    link = await link_service.update_link(short_code, owner_id, changes)
    if not link:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Short link not found"
        )
    return link


@router.get("/{short_code}/stats", response_model=LinkStats)
async def get_link_stats(
    short_code: str,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    stats = await link_service.get_link_stats(short_code, owner_id)
    if not stats:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Short link not found"
        )
    return stats


@router.delete("/{short_code}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_link(
    short_code: str,
    owner_id: str = Depends(get_owner_id),
    link_service: LinkService = Depends(get_link_service)
):
    """Soft delete: the link stops resolving but its code stays reserved"""
    success = await link_service.deactivate_link(short_code, owner_id)
    if not success:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Short link not found"
        )
