"""
Deposit Monitoring API Router
Endpoints for monitoring windows, manual deposit checks and pending investments
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Optional, List, Dict
import logging

from agents.errors import StorageError
from agents.monitoring_types import MonitoringContext, WalletRecord
from config.monitoring import DEFAULT_TTL_MINUTES
from services.deposit_service import get_deposit_service

logger = logging.getLogger("MonitoringAPI")

router = APIRouter(prefix="/api/monitoring", tags=["Deposit Monitoring"])


# ===========================================
# MODELS
# ===========================================

class StartMonitoringRequest(BaseModel):
    user_id: str
    context: MonitoringContext = MonitoringContext.ONBOARDING
    ttl_minutes: float = DEFAULT_TTL_MINUTES
    metadata: Dict = {}


class UserRequest(BaseModel):
    user_id: str


class CheckRequest(BaseModel):
    user_id: str
    first_time: bool = False


class BeginPendingRequest(BaseModel):
    user_id: str
    amount: float
    protocol: str
    pool_id: str = ""
    apy: float = 0.0
    current_balance: float = 0.0


class RegisterWalletRequest(BaseModel):
    user_id: str
    address: str
    owner_address: Optional[str] = None
    settlement_address: Optional[str] = None
    display_name: str = "there"


class CheckResponse(BaseModel):
    success: bool
    outcome: str
    balance: str
    shortage: Optional[str] = None
    message: str
    actions: List[str] = []


def _deploy_response(result) -> dict:
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error or "Deployment failed")
    return {"success": True, "tx_hash": result.tx_hash}


# ===========================================
# MONITORING WINDOWS
# ===========================================

@router.post("/start")
async def start_monitoring(request: StartMonitoringRequest):
    """Start (or extend) watching a user's wallet for an incoming deposit"""
    service = get_deposit_service()
    try:
        await service.store.start(
            request.user_id,
            request.context,
            request.ttl_minutes,
            request.metadata,
        )
    except StorageError as e:
        logger.error(f"Start monitoring error: {e}")
        raise HTTPException(status_code=503, detail=str(e))

    service.force_refresh()
    return {"success": True, "user_id": request.user_id, "context": request.context.value}


@router.post("/stop")
async def stop_monitoring(request: UserRequest):
    service = get_deposit_service()
    try:
        window = await service.store.stop(request.user_id)
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))

    service.force_refresh()
    return {"success": True, "was_active": window is not None}


@router.post("/refresh")
async def refresh_wallets():
    """Re-evaluate the watched wallets now"""
    get_deposit_service().force_refresh()
    return {"success": True}


@router.post("/wallets")
async def register_wallet(request: RegisterWalletRequest):
    """Register a wallet with the in-memory directory (no Supabase setups)"""
    get_deposit_service().directory.register(WalletRecord(**request.dict()))
    return {"success": True}


@router.get("/status")
async def get_status():
    return {"success": True, "status": get_deposit_service().get_status()}


# ===========================================
# MANUAL CHECK & PENDING INVESTMENTS
# ===========================================

@router.post("/check", response_model=CheckResponse)
async def check_deposit(request: CheckRequest):
    """User-triggered "check for my deposit" """
    try:
        result = await get_deposit_service().manual_check.check(request.user_id, request.first_time)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Deposit check error: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return CheckResponse(
        success=True,
        outcome=result.outcome.value,
        balance=str(result.balance),
        shortage=str(result.shortage) if result.shortage is not None else None,
        message=result.message,
        actions=result.actions,
    )


@router.post("/pending")
async def begin_pending(request: BeginPendingRequest):
    """Insufficient balance: remember the investment and watch for the rest"""
    try:
        pending = await get_deposit_service().manual_check.begin_pending(
            request.user_id,
            request.amount,
            request.protocol,
            pool_id=request.pool_id,
            apy=request.apy,
            current_balance=request.current_balance,
        )
    except StorageError as e:
        logger.error(f"Pending investment error: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    return {"success": True, "shortage": str(pending.shortage), "expires_at": pending.expires_at.isoformat()}


@router.post("/pending/complete")
async def complete_pending(request: UserRequest):
    try:
        result = await get_deposit_service().manual_check.complete(request.user_id)
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _deploy_response(result)


@router.post("/pending/invest-available")
async def invest_available(request: UserRequest):
    try:
        result = await get_deposit_service().manual_check.invest_available(request.user_id)
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _deploy_response(result)


@router.post("/pending/cancel")
async def cancel_pending(request: UserRequest):
    try:
        await get_deposit_service().manual_check.cancel(request.user_id)
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"success": True}
