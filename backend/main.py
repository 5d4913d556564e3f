"""
Techne.finance - Deposit Auto-Deploy Monitor API
Watches smart account wallets for USDC deposits and deploys them to the
best Base lending venue with sponsored gas.
"""

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agents.errors import MonitorConfigError
from api.monitoring_router import router as monitoring_router
from services.deposit_service import get_deposit_service, stop_deposit_monitoring

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("TechneMonitor")

app = FastAPI(
    title="Techne.finance Deposit Monitor",
    description="Demand-driven deposit detection and auto-deploy",
    version="1.0.0"
)

app.include_router(monitoring_router)

ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8000",
    "https://techne.finance",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# ============================================
# LIFECYCLE
# ============================================

@app.on_event("startup")
async def startup():
    try:
        await get_deposit_service().start()
    except MonitorConfigError as e:
        logger.critical(f"[Startup] Deposit monitoring cannot start: {e}")
        raise


@app.on_event("shutdown")
async def shutdown():
    await stop_deposit_monitoring()


@app.get("/health")
async def health_check():
    service = get_deposit_service()
    return {
        "status": "healthy" if service.started else "degraded",
        "monitor": service.get_status(),
    }


# ============================================
# RUN
# ============================================

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
