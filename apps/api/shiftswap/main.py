import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shiftswap.core.config import settings
from shiftswap.core.errors import register_error_handlers
from shiftswap.routers.swaps import router as swaps_router
from shiftswap.routers.schedule import router as schedule_router
from shiftswap.routers.admin import router as admin_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Shift Swap API")

# Comma-separated list, e.g.:
# CORS_ORIGINS="http://localhost:8081,http://127.0.0.1:8081"
allow_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]

# Safe fallback for local dev if env var not set
if not allow_origins:
  allow_origins = [
    "http://localhost:8081",
    "http://127.0.0.1:8081",
  ]

app.add_middleware(
  CORSMiddleware,
  allow_origins=allow_origins,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(swaps_router, prefix="/swaps", tags=["swaps"])
app.include_router(schedule_router, prefix="/schedule", tags=["schedule"])
app.include_router(admin_router, prefix="/admin", tags=["admin"])

@app.get("/health")
def health():
  return {"status": "ok"}
