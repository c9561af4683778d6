"""
Credit balance API endpoints
"""
from fastapi import APIRouter, Depends, HTTPException
from uuid import UUID
import logging

from lms_quiz.api.quiz_sessions import get_ledger_store
from lms_quiz.config import settings
from lms_quiz.schemas.quiz import BalanceResponse
from lms_quiz.services.stores import LedgerStore

router = APIRouter(prefix="/api", tags=["ledger"])
logger = logging.getLogger(__name__)


@router.get("/users/{user_id}/balance", response_model=BalanceResponse)
async def get_balance(
    user_id: UUID,
    ledger: LedgerStore = Depends(get_ledger_store)
):
    """Current credit balance used to pay for quiz retakes"""

    try:
        balance = await ledger.get_balance(str(user_id))
    except Exception as e:
        logger.error(f"Failed to fetch balance for user {user_id}: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch balance: {str(e)}"
        )

    if balance is None:
        raise HTTPException(status_code=404, detail="User not found")

    return BalanceResponse(user_id=user_id, balance=balance, currency=settings.CURRENCY_NAME)
