"""HTTP boundary for CMS change notifications."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response, status
from fastapi.responses import JSONResponse

from contentcache.errors import InvalidWebhookPayload, WebhookVerificationFailed
from contentcache.invalidation import InvalidationController

SIGNATURE_HEADER = "X-Signature"


def create_webhook_router(
    controller: InvalidationController,
    *,
    path: str = "/content-webhook",
) -> APIRouter:
    """Router exposing ``POST /content-webhook``.

    Responds 200 for every correctly signed event, whether or not anything
    was cached, so an untrusted caller learns nothing about cache state.
    """
    router = APIRouter(tags=["content-cache"])

    @router.post(path)
    async def content_webhook(request: Request) -> Response:
        payload = await request.body()
        try:
            await controller.handle_webhook(payload, request.headers.get(SIGNATURE_HEADER))
        except WebhookVerificationFailed:
            return JSONResponse(
                {"error": "invalid signature"},
                status_code=status.HTTP_401_UNAUTHORIZED,
            )
        except InvalidWebhookPayload as e:
            return JSONResponse(
                {"error": str(e)},
                status_code=status.HTTP_400_BAD_REQUEST,
            )
        return JSONResponse({"status": "accepted"})

    return router


__all__ = ["SIGNATURE_HEADER", "create_webhook_router"]
