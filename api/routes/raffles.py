"""
Raffle query endpoints (read-only)
"""

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from api.dependencies import get_db
from api.proof import build_tx_url, recompute_winning_index
from core.config import settings
from indexer.normalizer import I64_MAX, I64_MIN
from schemas.api import (
    RaffleSummary,
    RaffleDetails,
    PurchaseRangeResponse,
    ProofResponse,
    WinningRange,
    TxLinks,
    ErrorResponse,
)
from models.base import RaffleStatus
from models.purchase import Purchase
from models.raffle import Raffle
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1", tags=["Raffles"])

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100


def normalize_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_PAGE_LIMIT
    if limit <= 0:
        raise HTTPException(status_code=400, detail="limit must be positive")
    return min(limit, MAX_PAGE_LIMIT)


def normalize_offset(offset: Optional[int]) -> int:
    if offset is None:
        return 0
    if offset < 0:
        raise HTTPException(status_code=400, detail="offset must be >= 0")
    if offset > I64_MAX:
        raise HTTPException(status_code=400, detail="offset out of range")
    return offset


def parse_status(status: Optional[str]) -> Optional[RaffleStatus]:
    if status is None:
        return None
    try:
        return RaffleStatus(status.strip().upper())
    except ValueError:
        allowed = ", ".join(s.value for s in RaffleStatus)
        raise HTTPException(status_code=400, detail=f"status must be one of: {allowed}")


async def _get_raffle_or_404(db: AsyncSession, raffle_id: int) -> Raffle:
    result = await db.execute(select(Raffle).where(Raffle.raffle_id == raffle_id))
    raffle = result.scalar_one_or_none()
    if raffle is None:
        raise HTTPException(status_code=404, detail="raffle not found")
    return raffle


@router.get(
    "/raffles",
    response_model=List[RaffleSummary],
    responses={400: {"model": ErrorResponse}}
)
async def list_raffles(
    request: Request,
    limit: Optional[int] = Query(None, description=f"Page size (default {DEFAULT_PAGE_LIMIT}, max {MAX_PAGE_LIMIT})"),
    offset: Optional[int] = Query(None, description="Rows to skip"),
    status: Optional[str] = Query(None, description="Filter by status, e.g. ACTIVE or FINALIZED"),
    db: AsyncSession = Depends(get_db)
):
    """List raffles, newest first"""
    limit = normalize_limit(limit)
    offset = normalize_offset(offset)
    status_filter = parse_status(status)

    query = select(Raffle)
    if status_filter is not None:
        query = query.where(Raffle.status == status_filter)
    query = query.order_by(Raffle.raffle_id.desc()).limit(limit).offset(offset)

    result = await db.execute(query)
    raffles = result.scalars().all()

    request_id = getattr(request.state, "request_id", None)
    logger.debug(f"[{request_id}] GET /v1/raffles limit={limit} offset={offset} status={status_filter} -> {len(raffles)}")

    return [RaffleSummary.model_validate(r) for r in raffles]


@router.get(
    "/raffles/{raffle_id}",
    response_model=RaffleDetails,
    responses={404: {"model": ErrorResponse}}
)
async def get_raffle(
    raffle_id: int = Path(..., ge=I64_MIN, le=I64_MAX, description="On-chain raffle id"),
    db: AsyncSession = Depends(get_db)
):
    raffle = await _get_raffle_or_404(db, raffle_id)
    return RaffleDetails.model_validate(raffle)


@router.get(
    "/raffles/{raffle_id}/purchases",
    response_model=List[PurchaseRangeResponse],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def list_purchases(
    raffle_id: int = Path(..., ge=I64_MIN, le=I64_MAX, description="On-chain raffle id"),
    limit: Optional[int] = Query(None, description=f"Page size (default {DEFAULT_PAGE_LIMIT}, max {MAX_PAGE_LIMIT})"),
    offset: Optional[int] = Query(None, description="Rows to skip"),
    db: AsyncSession = Depends(get_db)
):
    """Ticket ranges in purchase order"""
    limit = normalize_limit(limit)
    offset = normalize_offset(offset)
    await _get_raffle_or_404(db, raffle_id)

    result = await db.execute(
        select(Purchase)
        .where(Purchase.raffle_id == raffle_id)
        .order_by(Purchase.id.asc())
        .limit(limit)
        .offset(offset)
    )
    return [PurchaseRangeResponse.model_validate(p) for p in result.scalars().all()]


@router.get(
    "/raffles/{raffle_id}/proof",
    response_model=ProofResponse,
    responses={404: {"model": ErrorResponse}}
)
async def get_raffle_proof(
    raffle_id: int = Path(..., ge=I64_MIN, le=I64_MAX, description="On-chain raffle id"),
    db: AsyncSession = Depends(get_db)
):
    """
    Draw verification data.

    When the winning index is not stored yet it is recomputed as
    randomness mod total_tickets, and the purchase range holding that
    index is returned.
    """
    raffle = await _get_raffle_or_404(db, raffle_id)
    winning_index = recompute_winning_index(raffle)

    winning_range = None
    if winning_index is not None:
        result = await db.execute(
            select(Purchase)
            .where(
                Purchase.raffle_id == raffle_id,
                Purchase.start_index <= winning_index,
                Purchase.end_index >= winning_index
            )
            .order_by(Purchase.id.asc())
            .limit(1)
        )
        purchase = result.scalar_one_or_none()
        if purchase is not None:
            winning_range = WinningRange.model_validate(purchase)

    base_url = settings.EXPLORER_BASE_URL
    txs = TxLinks(
        request_tx=raffle.request_tx,
        request_url=build_tx_url(base_url, raffle.request_tx),
        randomness_tx=raffle.randomness_tx,
        randomness_url=build_tx_url(base_url, raffle.randomness_tx),
        finalized_tx=raffle.finalized_tx,
        finalized_url=build_tx_url(base_url, raffle.finalized_tx),
    )

    return ProofResponse(
        raffle_id=raffle.raffle_id,
        request_id=raffle.request_id,
        randomness=raffle.randomness,
        total_tickets=raffle.total_tickets,
        winning_index=winning_index,
        winner=raffle.winner,
        winning_range=winning_range,
        txs=txs,
    )
