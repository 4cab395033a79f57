import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tradedesk.config import Settings
from tradedesk.database import Database
from tradedesk.errors import register_error_handlers
from tradedesk.ratelimit import RateLimiter
from tradedesk.routes.auth import router as auth_router, seed_admin
from tradedesk.routes.businesses import router as businesses_router
from tradedesk.routes.products import router as products_router
from tradedesk.routes.cart import router as cart_router
from tradedesk.routes.chat import router as chat_router
from tradedesk.routes.payment_links import router as payment_links_router
from tradedesk.routes.invoices import router as invoices_router
from tradedesk.routes.notifications import router as notifications_router
from tradedesk.routes.realtime import router as realtime_router
from tradedesk.services.realtime import ConnectionManager

logger = logging.getLogger("tradedesk")

VERSION = "1.0.0"


def configure_logging(level: str):
    """Root handler if none is set up yet; `tradedesk.*` loggers at `level`."""
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("tradedesk").setLevel(level.upper())


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    database = Database(settings.database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create tables
        database.create_all()
        db = database.session()
        try:
            seed_admin(db, settings)
        finally:
            db.close()
        logger.info("TradeDesk API ready (database %s)", database.engine.url.render_as_string(hide_password=True))
        yield
        database.dispose()

    app = FastAPI(
        title="TradeDesk API",
        description="B2B marketplace: catalog, cart, negotiation chat, payment links and invoices",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = database
    app.state.hub = ConnectionManager()
    app.state.chat_limiter = RateLimiter(settings.chat_rate_limit, settings.chat_rate_window_seconds)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    app.include_router(auth_router)
    app.include_router(businesses_router)
    app.include_router(products_router)
    app.include_router(cart_router)
    app.include_router(chat_router)
    app.include_router(payment_links_router)
    app.include_router(invoices_router)
    app.include_router(notifications_router)
    app.include_router(realtime_router)

    @app.get("/")
    def root():
        return {"message": "TradeDesk API is running", "version": VERSION}

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
