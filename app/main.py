from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.exeats.consent_router import router as parent_consent_router
from app.api.v1.exeats.router import router as exeats_router
from app.api.v1.payments.router import router as payments_router
from app.core.logging import configure_logging


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Exeat & NYSC Payments Backend")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(exeats_router)
    app.include_router(parent_consent_router)
    app.include_router(payments_router)

    return app


app = create_app()
