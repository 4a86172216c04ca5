"""
Resend webhook router.

Endpoints:
  POST /resend   - Resend event webhook (auth: HMAC signature headers)

The route only adapts HTTP to the pipeline: it reads the raw body (the
signature covers the exact bytes Resend sent), lower-cases the headers and
hands both to the WebhookProcessor stored on ``app.state``.  Non-POST
methods are answered with 405 by FastAPI's routing.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from mailrelay.models.webhook import RawWebhookRequest
from mailrelay.services.webhook_handler import WebhookProcessor, create_webhook_response

logger = logging.getLogger(__name__)

router = APIRouter()


def get_webhook_processor(request: Request) -> WebhookProcessor:
    """Return the processor wired by create_app()."""
    return request.app.state.webhook_processor


@router.post("/resend")
async def receive_resend_webhook(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> JSONResponse:
    raw_body = await request.body()
    headers = {key.lower(): value for key, value in request.headers.items()}

    result = await processor.process(
        RawWebhookRequest(
            body=raw_body.decode("utf-8", errors="replace"),
            headers=headers,
        )
    )

    status_code, body = create_webhook_response(result)
    return JSONResponse(status_code=status_code, content=body)
