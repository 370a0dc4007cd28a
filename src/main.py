import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.config import Config
from src.config.logging_config import configure_logging
from src.middleware.request_id_middleware import RequestIDMiddleware, get_request_id
from src.services.startup import lifespan

configure_logging()
logger = logging.getLogger(__name__)

# Initialize Sentry for error monitoring
if Config.SENTRY_ENABLED and Config.SENTRY_DSN:
    import sentry_sdk

    def sentry_traces_sampler(sampling_context):
        """
        Sampling strategy:
        - Errors: always (parent_sampled)
        - Development: 100%
        - Health endpoint: 0%
        - Everything else: SENTRY_TRACES_SAMPLE_RATE
        """
        if sampling_context.get("parent_sampled") is not None:
            return 1.0

        if Config.SENTRY_ENVIRONMENT == "development":
            return 1.0

        endpoint = sampling_context.get("asgi_scope", {}).get("path", "")
        if endpoint == "/health":
            return 0.0

        return Config.SENTRY_TRACES_SAMPLE_RATE

    sentry_sdk.init(
        dsn=Config.SENTRY_DSN,
        # Billing payloads carry customer emails; keep PII out of events
        send_default_pii=False,
        environment=Config.SENTRY_ENVIRONMENT,
        release=Config.SENTRY_RELEASE,
        traces_sampler=sentry_traces_sampler,
    )
    logger.info(
        f"Sentry initialized (environment: {Config.SENTRY_ENVIRONMENT}, "
        f"release: {Config.SENTRY_RELEASE})"
    )
else:
    logger.info("Sentry disabled (SENTRY_ENABLED=false or SENTRY_DSN not set)")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Client Comms Billing API",
        description="Subscription lifecycle and billing reconciliation for Client Comms",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Credentials are allowed, so origins must be explicit
    allowed_origins = [Config.FRONTEND_URL]
    if Config.IS_DEVELOPMENT:
        allowed_origins.append("http://localhost:3000")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=sorted(set(allowed_origins)),
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    app.add_middleware(RequestIDMiddleware)

    from src.routes.payments import router as payments_router

    app.include_router(payments_router)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        request_id = get_request_id(request)
        logger.error(
            f"Unhandled error on {request.method} {request.url.path} "
            f"(request_id={request_id}): {exc}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "request_id": request_id},
        )

    @app.get("/health", tags=["health"])
    async def health_check():
        return {"status": "healthy", "environment": Config.APP_ENV}

    return app


# Export a default app instance for environments that import `app`
app = create_app()

if __name__ == "__main__":
    import uvicorn

    logger.info("Starting billing API server...")
    uvicorn.run("src.main:app", host="0.0.0.0", port=8000, reload=Config.IS_DEVELOPMENT)
