import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from school_api.api.v1.attendance.router import router as attendance_router
from school_api.api.v1.auth.router import router as auth_router
from school_api.api.v1.results.router import router as results_router
from school_api.api.v1.schools.router import router as schools_router
from school_api.api.v1.user_management.router import router as user_management_router
from school_api.core.config import settings


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(title="School Management Backend")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(schools_router)
    app.include_router(user_management_router)
    app.include_router(attendance_router)
    app.include_router(results_router)

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
