from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from framegen.config import settings
from framegen.logging import RequestLoggingMiddleware, setup_logging
from framegen.routers.pipeline import router as pipeline_router

setup_logging(settings.log_level)

app = FastAPI(title="Framegen Design Pipeline")

app.add_middleware(
    CORSMiddleware,  # ty: ignore[invalid-argument-type]  # Starlette ParamSpec typing limitation
    allow_origins=["*"],
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)  # ty: ignore[invalid-argument-type]  # same Starlette issue

app.include_router(pipeline_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "model": settings.model_name}
