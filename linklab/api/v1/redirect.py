from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse

from linklab.dependencies import get_redirect_resolver
from linklab.services.redirect_resolver import RedirectResolver, RequestContext

router = APIRouter(tags=["redirect"])


@router.get("/{short_code}")
async def redirect_short_code(
    short_code: str,
    request: Request,
    resolver: RedirectResolver = Depends(get_redirect_resolver)
):
    """
    Redirect a short code to its destination.

    Always answers 302, browsers follow this link directly: unknown,
    expired and over-limit links go to the matching status page, and
    unexpected failures go to the generic error page.

    The click is recorded in a detached task; the redirect does not wait
    for it.
    """
    resolution = await resolver.resolve(short_code, RequestContext.from_request(request))
    return RedirectResponse(url=resolution.location, status_code=status.HTTP_302_FOUND)
