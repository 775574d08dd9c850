"""API routes for the confirmation service."""

import json
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from cod_confirm.config.constants import TEMPLATE_IDS
from cod_confirm.core.exceptions import ShopifyAPIError, ShopifyConfigMissing
from cod_confirm.core.logger import setup_logger
from cod_confirm.core.monitoring import capture_exception
from cod_confirm.core.signature import validate_webhook_request
from cod_confirm.db.repository import OrderRepository, TemplateRepository
from cod_confirm.models.message import GatewayEvent, SendConfirmationRequest, TemplateRead, TemplateUpdate
from cod_confirm.models.order import OrderRead, ShopifyOrderPayload
from cod_confirm.models.sync import SyncRequest
from cod_confirm.server.auth import verify_api_key, verify_gateway_token
from cod_confirm.server.context import AppContext

logger = setup_logger(__name__)
router = APIRouter()


def get_context(request: Request) -> AppContext:
    """Application context built at startup."""
    return request.app.state.context


@router.get("/")
async def root() -> dict:
    """Root endpoint with basic service info."""
    return {
        "service": "COD Order Confirmation",
        "version": "1.0.0",
        "endpoints": {
            "webhook": "POST /api/webhooks/shopify",
            "sync": "POST /api/shopify/sync-orders",
            "send_confirmation": "POST /api/whatsapp/send-confirmation",
            "whatsapp_status": "GET /api/whatsapp/status",
            "whatsapp_events": "POST /api/whatsapp/events",
            "templates": "GET /api/templates",
            "health": "GET /health",
            "docs": "GET /docs",
        },
    }


@router.get("/health")
async def health_check(ctx: AppContext = Depends(get_context)) -> dict:
    """Health check endpoint for monitoring."""
    health_status = {
        "status": "healthy",
        "service": "cod-confirm",
        "checks": {},
    }

    health_status["checks"]["whatsapp"] = "ready" if ctx.messaging.is_ready else "not_ready"
    if not ctx.messaging.is_ready:
        health_status["status"] = "degraded"

    if ctx.scheduler:
        health_status["checks"]["reminder_scheduler"] = "running" if ctx.scheduler.is_running else "stopped"
        health_status["checks"]["next_sweep"] = ctx.scheduler.get_next_run_time()

    health_status["checks"]["pending_tasks"] = len(ctx.tasks)
    return health_status


@router.post("/api/webhooks/shopify")
@router.post("/api/webhooks/shopify/orders/create")
async def shopify_webhook(
    request: Request,
    x_shopify_hmac_sha256: Optional[str] = Header(None),
    x_shopify_shop_domain: Optional[str] = Header(None),
    ctx: AppContext = Depends(get_context),
) -> Response:
    """
    Shopify orders/create webhook.

    The signature is checked against the raw body before anything is parsed
    or stored. Any non-2xx answer makes Shopify retry the delivery.
    """
    logger.info("Received webhook request...")
    raw_body = await request.body()

    secret = await ctx.ingestion.get_webhook_secret(x_shopify_shop_domain)
    is_valid, error_msg = validate_webhook_request(raw_body, x_shopify_hmac_sha256, x_shopify_shop_domain, secret)
    if not is_valid:
        logger.warning(f"Invalid webhook request: {error_msg}")
        return PlainTextResponse("Invalid signature", status_code=status.HTTP_401_UNAUTHORIZED)

    try:
        payload = ShopifyOrderPayload.model_validate(json.loads(raw_body))
    except (ValueError, ValidationError) as e:
        logger.warning(f"Invalid webhook payload: {e}")
        return PlainTextResponse("Invalid payload", status_code=status.HTTP_400_BAD_REQUEST)

    try:
        order, _ = await ctx.ingestion.ingest(payload, x_shopify_shop_domain)
    except SQLAlchemyError as e:
        logger.error(f"Error inserting order: {e}", exc_info=True)
        capture_exception(e, {"shopify_order_id": payload.id, "shop_domain": x_shopify_shop_domain})
        return PlainTextResponse("Database error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    logger.info(f"Order {order.order_number} processed successfully.")
    return PlainTextResponse("OK", status_code=status.HTTP_200_OK)


@router.post("/api/shopify/sync-orders")
async def sync_orders(sync_request: SyncRequest, ctx: AppContext = Depends(get_context)):
    """Import historical orders created between startDate and endDate."""
    if not sync_request.start_date or not sync_request.end_date:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "startDate and endDate are required"},
        )

    try:
        summary = await ctx.sync.sync_orders(sync_request.start_date, sync_request.end_date)
    except ShopifyConfigMissing as e:
        logger.error(f"[SYNC] {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Shopify not configured"},
        )
    except ShopifyAPIError as e:
        logger.error(f"[SYNC] Shopify API error: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to fetch orders from Shopify"},
        )
    except Exception as e:
        logger.error(f"[SYNC] Sync failed: {e}", exc_info=True)
        capture_exception(e, {"operation": "sync"})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Sync failed", "details": str(e)},
        )

    return {"success": True, "summary": summary.model_dump()}


@router.get("/api/whatsapp/status")
async def whatsapp_status(ctx: AppContext = Depends(get_context)) -> dict:
    """Current readiness of the WhatsApp session."""
    return {
        "connected": ctx.messaging.is_ready,
        "message": ctx.messaging.status_message,
    }


@router.post("/api/whatsapp/send-confirmation")
async def send_confirmation(request: Request, ctx: AppContext = Depends(get_context)):
    """Manually send the initial confirmation message for an order."""
    try:
        send_request = SendConfirmationRequest.model_validate(await request.json())
    except (ValueError, ValidationError):
        return PlainTextResponse("Missing orderId", status_code=status.HTTP_400_BAD_REQUEST)

    async with ctx.session_factory() as session:
        order = await OrderRepository(session).get_by_id(send_request.order_id)

    if order is None:
        return PlainTextResponse("Order not found", status_code=status.HTTP_404_NOT_FOUND)

    if order.message_sent_at is not None:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"success": False, "message": "Confirmation already sent"},
        )

    if await ctx.confirmation.send_initial_confirmation(order.id):
        return {"success": True, "message": "Message sent"}

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "Failed to send or WhatsApp not ready"},
    )


@router.post("/api/whatsapp/events", dependencies=[Depends(verify_gateway_token)])
async def whatsapp_event(event: GatewayEvent, ctx: AppContext = Depends(get_context)) -> dict:
    """
    Events pushed by the WhatsApp gateway.

    Replies are handled in the background; the anti-bot delay alone can
    exceed the gateway's request timeout.
    """
    if event.type == "ready":
        ctx.messaging.set_ready(True, "Connected")
    elif event.type == "disconnected":
        ctx.messaging.set_ready(False, f"Disconnected: {event.reason or 'unknown'}")
    elif event.message is not None:
        ctx.tasks.spawn(
            ctx.confirmation.handle_reply(event.message),
            name=f"reply-{event.message.counterpart}",
        )

    return {"ok": True}


@router.get("/api/templates", response_model=List[TemplateRead], dependencies=[Depends(verify_api_key)])
async def list_templates(ctx: AppContext = Depends(get_context)):
    """All stored message templates."""
    async with ctx.session_factory() as session:
        return await TemplateRepository(session).list_all()


@router.put("/api/templates/{template_id}", response_model=TemplateRead, dependencies=[Depends(verify_api_key)])
async def update_template(template_id: str, update: TemplateUpdate, ctx: AppContext = Depends(get_context)):
    """Replace the text of a message template. Takes effect on the next send."""
    if template_id not in TEMPLATE_IDS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown template {template_id}")

    async with ctx.session_factory() as session:
        template = await TemplateRepository(session).upsert(
            template_id,
            update.content,
            name=update.name,
            variables=update.variables,
        )
    logger.info(f"Template {template_id} updated")
    return template


@router.get("/api/orders/{order_id}", response_model=OrderRead, dependencies=[Depends(verify_api_key)])
async def get_order(order_id: int, ctx: AppContext = Depends(get_context)):
    """Order with its items and timeline."""
    async with ctx.session_factory() as session:
        order = await OrderRepository(session).get_by_id(order_id)

    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order
