import asyncio

import httpx

from ..context import JobContext
from ..models import ImagePostprocessPayload, JobResult
from ..telemetry import get_logger

log = get_logger(__name__)


async def _head(client: httpx.AsyncClient, url: str, timeout: float) -> httpx.Response:
    # httpx times each phase separately; the check as a whole gets one deadline
    return await asyncio.wait_for(client.head(url, timeout=timeout, follow_redirects=True), timeout)


async def validate_image_link(payload: ImagePostprocessPayload, ctx: JobContext) -> JobResult:
    """Advisory reachability check for a listing image.

    Only a missing URL fails the job; an unreachable image is logged and the job
    still succeeds so retries are never spent on an already-published listing.
    """
    if not payload.image_url:
        return JobResult.fail("Missing imageUrl in payload")

    timeout = ctx.settings.link_check_timeout
    try:
        if ctx.http is not None:
            response = await _head(ctx.http, payload.image_url, timeout)
        else:
            async with httpx.AsyncClient() as client:
                response = await _head(client, payload.image_url, timeout)
    except (httpx.HTTPError, asyncio.TimeoutError) as e:
        log.warning(
            "image_validation_error",
            image_url=payload.image_url,
            sale_id=payload.sale_id,
            error=str(e) or type(e).__name__,
        )
        return JobResult.ok(reachable=False)

    if not response.is_success:
        log.warning(
            "image_validation_failed",
            image_url=payload.image_url,
            sale_id=payload.sale_id,
            status=response.status_code,
        )
        return JobResult.ok(reachable=False, status=response.status_code)

    log.info("image_validated", image_url=payload.image_url, sale_id=payload.sale_id)
    return JobResult.ok(reachable=True, status=response.status_code)
