import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from qbo_bridge.api.qbo_router import qbo_router
from qbo_bridge.config.settings import AppSettings
from qbo_bridge.integrations.qbo_client import QBOGateway
from qbo_bridge.integrations.qbo_session import QBOOAuthSession
from qbo_bridge.integrations.qbo_tokens import QBOCredentialStore
from qbo_bridge.services.customer_bridge import CustomerListBridge
from qbo_bridge.services.refresh_scheduler import TokenRefreshScheduler

logger = logging.getLogger(__name__)


def configure_logging(settings: AppSettings) -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    if settings.debug:
        logging.getLogger("qbo_bridge").setLevel(logging.DEBUG)
    # intuitlib and urllib3 are chatty at DEBUG and may echo request bodies.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("intuitlib").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Restore the stored credential, then own the refresh task until shutdown."""

    session: QBOOAuthSession = app.state.qbo_session
    scheduler: TokenRefreshScheduler = app.state.refresh_scheduler
    bridge: CustomerListBridge = app.state.customer_bridge

    logger.info("Starting QBO bridge (%s)", session.environment)
    if session.restore() is not None:
        logger.info("Read locally stored QBO credential; refreshing it")
        await scheduler.refresh_once()
    else:
        logger.info("Did not find a locally stored QBO credential")
    scheduler.start()
    yield

    logger.info("Shutting down QBO bridge...")
    await scheduler.stop()
    await bridge.close()


def create_app(
    settings: AppSettings | None = None,
    *,
    session: QBOOAuthSession | None = None,
) -> FastAPI:
    settings = settings or AppSettings.from_env()
    configure_logging(settings)

    if session is None:
        session = QBOOAuthSession(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_uri=settings.redirect_uri,
            environment=settings.environment,
            store=QBOCredentialStore(settings.tokens_path),
            timeout_seconds=settings.timeout_seconds,
        )
    gateway = QBOGateway(
        session,
        timeout_seconds=settings.timeout_seconds,
        minor_version=settings.minor_version,
        debug=settings.debug,
    )

    app = FastAPI(title="QBO Bridge", lifespan=lifespan)
    app.state.settings = settings
    app.state.qbo_session = session
    app.state.qbo_gateway = gateway
    app.state.customer_bridge = CustomerListBridge(gateway)
    app.state.refresh_scheduler = TokenRefreshScheduler(
        session, interval_seconds=settings.refresh_interval_seconds
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(qbo_router, prefix=settings.route_prefix)
    return app


# Run the app
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "qbo_bridge.app:create_app",
        factory=True,
        host="127.0.0.1",
        port=8000,
        log_level="info",
        access_log=False,
    )
