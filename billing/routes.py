"""FastAPI routes for Stripe callbacks."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import JSONResponse

from .exceptions import RemoteAPIError
from .interfaces import Principal
from .provider import BillingProvider
from .records import Event
from .webhooks import parse_event

logger = logging.getLogger(__name__)


class StarletteRequestContext:
    """RequestContext over a Starlette/FastAPI request."""

    def __init__(self, request: Request):
        self.request = request

    def base_url(self) -> str:
        return str(self.request.base_url).rstrip("/")

    def query_param(self, name: str) -> Optional[str]:
        return self.request.query_params.get(name)


class RequestPrincipalAccessor:
    def __init__(
        self,
        request: Request,
        resolver: Optional[Callable[[Request], Optional[Principal]]] = None,
    ):
        self.request = request
        self.resolver = resolver

    def current(self) -> Optional[Principal]:
        if self.resolver is None:
            return None
        return self.resolver(self.request)


def build_billing_router(
    get_provider: Callable[[Request], BillingProvider],
    webhook_secret: str,
    event_handler: Optional[Callable[[Event], Any]] = None,
) -> APIRouter:
    router = APIRouter(prefix="/billing", tags=["billing"])

    @router.post("/stripe/webhook")
    async def stripe_webhook(request: Request):
        payload = await request.body()
        event = parse_event(payload, request.headers.get("stripe-signature"), webhook_secret)

        logger.info("Stripe webhook received: %s (%s)", event.type, event.id)
        if event_handler is not None:
            event_handler(event)

        return JSONResponse(content={"received": True})

    @router.get("/callback")
    def checkout_callback(request: Request):
        provider = get_provider(request)
        try:
            session = provider.callback()
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        except RemoteAPIError as exc:
            logger.exception("Failed to confirm checkout session")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Unable to contact billing provider.",
            ) from exc

        return JSONResponse(
            content={
                "session_id": session.id,
                "status": session.status,
                "payment_status": session.payment_status,
                "paid": session.is_paid,
            }
        )

    return router
