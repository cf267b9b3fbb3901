from fastapi import APIRouter, BackgroundTasks, Request, Response

from app.core.limiter import inquiry_rate_limit, limiter
from app.deps import MetadataStoreDep
from app.schemas.inquiry import InquiryRequest, InquiryResponse
from app.services.inquiry import submit_inquiry

router = APIRouter(tags=["inquiry"])


@router.post("/send-inquiry", response_model=InquiryResponse)
@limiter.limit(inquiry_rate_limit)
async def send_inquiry(
    request: Request,
    response: Response,
    payload: InquiryRequest,
    background_tasks: BackgroundTasks,
    store: MetadataStoreDep,
) -> InquiryResponse:
    await submit_inquiry(payload, background_tasks, store)
    return InquiryResponse(message="Inquiry sent successfully")


__all__ = ["router"]
