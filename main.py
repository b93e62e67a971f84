"""
FastAPI application entry point
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import orders as orders_routes
from api.routes import payme as payme_routes
from application.services.billz_dispatch_service import BillzDispatchService
from application.services.checkout_service import CheckoutApplicationService
from application.services.order_service import OrderApplicationService
from application.services.payme_service import PaymeApplicationService
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from core.settings import payment_settings
from infrastructure.database import create_tables
from infrastructure.external.billz import BillzClient, BillzOrderGateway, TokenCache
from infrastructure.tasks import TaskDispatcher
from infrastructure.tasks.notifier import CeleryPaymentNotifier
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


configure_logging()
logger = get_logger(__name__)


def build_services(app: FastAPI, billz_client: BillzClient) -> None:
    """Wire application services onto ``app.state``"""
    payme = payment_settings.payme
    billz = payment_settings.billz
    tasks = TaskDispatcher()
    notifier = CeleryPaymentNotifier(tasks)

    dispatcher = BillzDispatchService(
        SQLAlchemyUnitOfWork,
        BillzOrderGateway(billz_client, billz),
        notifier=notifier,
        currency=payme.currency,
        error_max_length=billz.sync_error_max_length,
    )
    app.state.billz_dispatch_service = dispatcher
    app.state.payme_service = PaymeApplicationService(
        SQLAlchemyUnitOfWork,
        dispatcher,
        timeout_ms=payme.pending_timeout_ms,
    )
    app.state.checkout_service = CheckoutApplicationService(
        SQLAlchemyUnitOfWork,
        merchant_id=payme.merchant_id,
        checkout_url=payme.checkout_url,
    )
    app.state.order_service = OrderApplicationService(
        SQLAlchemyUnitOfWork,
        dispatcher=dispatcher,
        tasks=tasks,
        notifier=notifier,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Production schemas come from Alembic (alembic upgrade head)
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")

    if not payment_settings.payme.merchant_key:
        logger.warning("payme_merchant_key_missing", message="All Payme RPC calls will be rejected")
    if not payment_settings.billz.secret_key:
        logger.warning("billz_secret_key_missing", message="Billz dispatch will fail until configured")

    # one token cache per process, shared by every Billz call
    billz_client = BillzClient(
        payment_settings.billz,
        TokenCache(leeway_seconds=payment_settings.billz.token_leeway_seconds),
    )
    build_services(app, billz_client)
    logger.info("application_started", environment=settings.ENVIRONMENT)

    yield

    await billz_client.close()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Payme merchant API with Billz order dispatch",
)

# Starlette runs middleware bottom-up: request id is bound before logging
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(payme_routes.router, prefix="/api/v1")
app.include_router(orders_routes.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc",
        },
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return success_response(data={"status": "healthy"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
