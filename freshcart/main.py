# file: freshcart/main.py
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from freshcart.core import config
from freshcart.core.cleanup import cleanup_expired_tokens, cleanup_old_activity_logs
from freshcart.core.firebase import get_db
from freshcart.core.logger import setup_cloud_logging
from freshcart.core.middleware import ActivityMiddleware
from freshcart.core.rate_limit import PING_LIMIT, limiter, retry_after_seconds

# ------------------------------
# Routers
# ------------------------------
from freshcart.ADMIN.admin_routes import router as admin_router
from freshcart.ADMIN.bootstrap import ensure_admin_account
from freshcart.Cart.cart import router as cart_router
from freshcart.Delivery.routes import admin_router as delivery_admin_router, router as delivery_router
from freshcart.Delivery.settings import router as delivery_settings_router
from freshcart.Delivery.verification import send_license_expiry_reminders
from freshcart.Notification.notification import router as notification_router
from freshcart.Orders.orders import auto_reject_expired_orders, router as orders_router
from freshcart.Store.bank import router as bank_router
from freshcart.Store.branches import router as branches_router
from freshcart.Store.hours import router as store_hours_router
from freshcart.Store.license import router as license_router
from freshcart.Store.products import public_router as public_products_router, router as products_router
from freshcart.USERS.addresses import router as addresses_router
from freshcart.USERS.routes_auth import router as auth_router
from freshcart.USERS.user_routes import router as user_router
from freshcart.Wallet.wallet import router as wallet_router

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("main")

app = FastAPI(title="FreshCart API")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ActivityMiddleware)

# Rate limiter
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    retry_after = retry_after_seconds(exc)
    response = JSONResponse(
        status_code=429,
        content={
            "detail": "Too many requests. Please slow down.",
            "limit": str(exc.detail),
            "retry_after_seconds": retry_after,
        },
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


app.include_router(auth_router)
app.include_router(user_router)
app.include_router(addresses_router)
app.include_router(store_hours_router)
app.include_router(bank_router)
app.include_router(branches_router)
app.include_router(wallet_router)
app.include_router(license_router)
app.include_router(products_router)
app.include_router(public_products_router)
app.include_router(cart_router)
app.include_router(orders_router)
app.include_router(notification_router)
app.include_router(delivery_router)
app.include_router(delivery_admin_router)
app.include_router(delivery_settings_router)
app.include_router(admin_router)


# Ping endpoint
@app.get("/ping")
@limiter.limit(PING_LIMIT)
async def ping(request: Request, response: Response):
    return {"message": "pong", "status": "ok"}


@app.get("/firebase/health")
async def firebase_health():
    try:
        project = getattr(get_db(), "project", None)
        return {"ok": True, "firestore_project": project}
    except Exception as e:
        logger.exception("Firebase health check failed: %s", e)
        raise HTTPException(status_code=500, detail="Firebase health check failed")


# ------------------------------
# Startup / shutdown
# ------------------------------
@app.on_event("startup")
async def startup_event():
    setup_cloud_logging()

    try:
        await ensure_admin_account()
    except Exception as e:
        logger.exception("Admin bootstrap failed: %s", e)

    if not config.SCHEDULER_ENABLED:
        logger.info("[SCHEDULER] Disabled")
        return

    scheduler = AsyncIOScheduler()
    scheduler.add_job(auto_reject_expired_orders, "interval", minutes=1, id="auto_reject_orders")
    scheduler.add_job(cleanup_expired_tokens, "cron", hour=3, id="cleanup_tokens")
    scheduler.add_job(cleanup_old_activity_logs, "cron", hour=3, minute=30, id="cleanup_activity")
    scheduler.add_job(
        send_license_expiry_reminders,
        "cron",
        hour=7,
        kwargs={"days_ahead": config.LICENSE_EXPIRY_WARNING_DAYS},
        id="license_expiry_reminders",
    )
    scheduler.start()
    app.state.scheduler = scheduler
    logger.info("[SCHEDULER] Order auto-reject every minute; token/activity cleanup and license reminders daily.")


@app.on_event("shutdown")
async def shutdown_event():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.shutdown(wait=False)
