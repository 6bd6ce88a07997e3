import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from patch_api.core.config import settings
from patch_api.core.http_hardening import install_error_handlers, install_http_hardening
from patch_api.api.v1.router import router as v1_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

API_PREFIX = "/api/patch/v1"

app = FastAPI(title=settings.APP_NAME, version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)
install_http_hardening(app)
install_error_handlers(app)

app.include_router(v1_router, prefix=API_PREFIX)

@app.get("/", include_in_schema=False)
def landing():
    return JSONResponse({"service": settings.APP_NAME, "env": settings.APP_ENV, "status": "ok"})

@app.get("/health")
def health():
    return {"status": "ok"}
