"""
Per-event projections: the raffle state machine.

Each handler runs inside the processor's per-log transaction and receives
``first_delivery`` (False when the raw log was already archived). Row inserts
are insert-or-ignore and aggregates only move when the row was inserted, so
replaying a log has no additional effect.

An event that arrives in a status which does not admit it is still archived.
Transitions are left untouched; a late purchase is recorded with its
``out_of_order`` flag set. Either way the handler returns False.

    ACTIVE --RaffleClosed--> CLOSED
    CLOSED --RandomnessRequested--> RANDOM_REQUESTED
    RANDOM_REQUESTED --RandomnessFulfilled--> RANDOM_FULFILLED
    RANDOM_FULFILLED --WinnerSelected--> FINALIZED   (pot reset to zero)
    ACTIVE|CLOSED|RANDOM_REQUESTED --RefundsStarted--> REFUNDING
    REFUNDING --RefundClaimed--> REFUNDING           (pot decremented)
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from core.exceptions import MalformedProofError, UnknownRaffleError
from indexer.abi_registry import DecodedEvent, EventKind
from indexer.loaders.projection_loader import ProjectionLoader
from indexer.normalizer import (
    normalize_address,
    timestamp_to_datetime,
    to_decimal_text,
    to_hex_data,
    to_i64,
    to_i64_or_none,
)
from models.base import RaffleStatus
from models.raffle import Raffle

logger = logging.getLogger(__name__)

# A handler returns False when the event does not fit the raffle's current status
Handler = Callable[[ProjectionLoader, DecodedEvent, bool], Awaitable[Optional[bool]]]

REFUNDABLE = (RaffleStatus.ACTIVE, RaffleStatus.CLOSED, RaffleStatus.RANDOM_REQUESTED)


def _identity(event: DecodedEvent) -> Dict[str, Any]:
    return {
        "tx_hash": event.log.transaction_hash,
        "log_index": event.log.log_index,
        "block_number": event.log.block_number,
    }


def _context(event: DecodedEvent, **extra: Any) -> Dict[str, Any]:
    context = {"event": event.name, **_identity(event)}
    context.update(extra)
    return context


async def _require_raffle(loader: ProjectionLoader, event: DecodedEvent, for_update: bool = False) -> Raffle:
    """Load the raffle a raffle-scoped event refers to and check the emitter"""
    raffle_id = to_i64(event.require("raffleId"), "raffleId")
    raffle = await loader.get_raffle(raffle_id, for_update=for_update)

    if raffle is None:
        raise UnknownRaffleError(
            f"{event.name} references unknown raffle {raffle_id}",
            context=_context(event, raffle_id=raffle_id)
        )

    if event.log.address != raffle.raffle_address:
        raise UnknownRaffleError(
            f"{event.name} for raffle {raffle_id} was not emitted by the raffle contract",
            context=_context(event, raffle_id=raffle_id, emitter=event.log.address)
        )

    return raffle


def _report_rejected(event: DecodedEvent, raffle: Raffle, target: RaffleStatus, first_delivery: bool) -> bool:
    message = (
        f"Ignoring {event.name} for raffle {raffle.raffle_id}: "
        f"cannot move from {raffle.status.value} to {target.value}"
    )
    if first_delivery:
        logger.warning(message, extra={"error_context": _context(event, raffle_id=raffle.raffle_id)})
    else:
        logger.debug(message)
    return False


# ============================================================================
# Factory
# ============================================================================

async def handle_raffle_created(
    loader: ProjectionLoader, event: DecodedEvent, first_delivery: bool
) -> Optional[bool]:
    raffle_id = to_i64(event.require("raffleId"), "raffleId")
    now = datetime.utcnow()

    inserted = await loader.insert_raffle({
        "raffle_id": raffle_id,
        "raffle_address": normalize_address(event.require("raffle")),
        "creator": normalize_address(event.require("creator")),
        "end_time": timestamp_to_datetime(event.require("endTime"), "endTime"),
        "ticket_price": int(event.require("ticketPrice")),
        "max_tickets": to_i64(event.require("maxTickets"), "maxTickets"),
        "fee_bps": to_i64(event.require("feeBps"), "feeBps"),
        "fee_recipient": normalize_address(event.require("feeRecipient")),
        "created_tx": event.log.transaction_hash,
        "created_block": event.log.block_number,
        "status": RaffleStatus.ACTIVE,
        "total_tickets": 0,
        "pot": 0,
        "created_at": now,
        "updated_at": now,
    })

    if inserted:
        logger.info(f"Raffle {raffle_id} created at {event.params['raffle']}")
    elif first_delivery:
        logger.warning(
            f"Raffle {raffle_id} already exists; RaffleCreated ignored",
            extra={"error_context": _context(event, raffle_id=raffle_id)}
        )


# ============================================================================
# Raffle
# ============================================================================

async def handle_tickets_bought(
    loader: ProjectionLoader, event: DecodedEvent, first_delivery: bool
) -> Optional[bool]:
    raffle = await _require_raffle(loader, event, for_update=True)

    start_index = to_i64(event.require("startIndex"), "startIndex")
    end_index = to_i64(event.require("endIndex"), "endIndex")
    count = to_i64(event.require("count"), "count")
    amount = int(event.require("amountPaid"))
    out_of_order = raffle.status != RaffleStatus.ACTIVE

    inserted = await loader.insert_purchase({
        "raffle_id": raffle.raffle_id,
        "buyer": normalize_address(event.require("buyer")),
        "start_index": start_index,
        "end_index": end_index,
        "count": count,
        "amount": amount,
        "out_of_order": out_of_order,
        **_identity(event),
    })

    if not inserted:
        logger.debug(f"Purchase {event.log.transaction_hash}:{event.log.log_index} already recorded")
        return

    new_total = to_i64(raffle.total_tickets + count, "total_tickets")
    raffle.total_tickets = new_total
    raffle.pot = raffle.pot + amount
    raffle.updated_at = datetime.utcnow()

    if end_index - start_index + 1 != count:
        logger.warning(
            f"Purchase range [{start_index}, {end_index}] does not match count {count} "
            f"for raffle {raffle.raffle_id}",
            extra={"error_context": _context(event, raffle_id=raffle.raffle_id)}
        )
    if out_of_order:
        logger.warning(
            f"Purchase recorded out of order for raffle {raffle.raffle_id} in status {raffle.status.value}",
            extra={"error_context": _context(event, raffle_id=raffle.raffle_id)}
        )
        return False
    return True


async def handle_raffle_closed(
    loader: ProjectionLoader, event: DecodedEvent, first_delivery: bool
) -> Optional[bool]:
    raffle = await _require_raffle(loader, event)
    reported_total = to_i64(event.require("totalTickets"), "totalTickets")
    reported_pot = int(event.require("pot"))

    moved = await loader.transition(raffle.raffle_id, [RaffleStatus.ACTIVE], RaffleStatus.CLOSED)
    if not moved:
        return _report_rejected(event, raffle, RaffleStatus.CLOSED, first_delivery)

    if reported_total != raffle.total_tickets or reported_pot != raffle.pot:
        logger.warning(
            f"Raffle {raffle.raffle_id} closed with totalTickets={reported_total} pot={reported_pot}, "
            f"projection has total_tickets={raffle.total_tickets} pot={raffle.pot}",
            extra={"error_context": _context(event, raffle_id=raffle.raffle_id)}
        )


async def handle_randomness_requested(
    loader: ProjectionLoader, event: DecodedEvent, first_delivery: bool
) -> Optional[bool]:
    raffle = await _require_raffle(loader, event)

    moved = await loader.transition(
        raffle.raffle_id,
        [RaffleStatus.CLOSED],
        RaffleStatus.RANDOM_REQUESTED,
        request_id=to_decimal_text(event.require("requestId")),
        request_tx=event.log.transaction_hash,
    )
    if not moved:
        return _report_rejected(event, raffle, RaffleStatus.RANDOM_REQUESTED, first_delivery)


async def handle_randomness_fulfilled(
    loader: ProjectionLoader, event: DecodedEvent, first_delivery: bool
) -> Optional[bool]:
    raffle = await _require_raffle(loader, event)

    moved = await loader.transition(
        raffle.raffle_id,
        [RaffleStatus.RANDOM_REQUESTED],
        RaffleStatus.RANDOM_FULFILLED,
        request_id=to_decimal_text(event.require("requestId")),
        randomness=to_decimal_text(event.require("randomness")),
        randomness_tx=event.log.transaction_hash,
        randomness_total_tickets=Raffle.total_tickets,
    )
    if not moved:
        return _report_rejected(event, raffle, RaffleStatus.RANDOM_FULFILLED, first_delivery)


async def handle_winner_selected(
    loader: ProjectionLoader, event: DecodedEvent, first_delivery: bool
) -> Optional[bool]:
    raffle = await _require_raffle(loader, event)

    moved = await loader.transition(
        raffle.raffle_id,
        [RaffleStatus.RANDOM_FULFILLED],
        RaffleStatus.FINALIZED,
        winner=normalize_address(event.require("winner")),
        winning_index=to_i64(event.require("winningIndex"), "winningIndex"),
        finalized_tx=event.log.transaction_hash,
        pot=0,
    )
    if moved:
        logger.info(f"Raffle {raffle.raffle_id} finalized, winner {event.params['winner']}")
    else:
        return _report_rejected(event, raffle, RaffleStatus.FINALIZED, first_delivery)


async def handle_refunds_started(
    loader: ProjectionLoader, event: DecodedEvent, first_delivery: bool
) -> Optional[bool]:
    raffle = await _require_raffle(loader, event)

    moved = await loader.transition(raffle.raffle_id, REFUNDABLE, RaffleStatus.REFUNDING)
    if not moved:
        return _report_rejected(event, raffle, RaffleStatus.REFUNDING, first_delivery)


async def handle_refund_claimed(
    loader: ProjectionLoader, event: DecodedEvent, first_delivery: bool
) -> Optional[bool]:
    raffle = await _require_raffle(loader, event, for_update=True)

    amount = int(event.require("amount"))
    ticket_count = event.get("ticketCount")

    inserted = await loader.insert_refund({
        "raffle_id": raffle.raffle_id,
        "buyer": normalize_address(event.require("buyer")),
        "ticket_count": to_i64(ticket_count, "ticketCount") if ticket_count is not None else None,
        "amount": amount,
        **_identity(event),
    })

    if inserted:
        raffle.pot = raffle.pot - amount
        raffle.updated_at = datetime.utcnow()
        if raffle.pot < 0:
            logger.warning(
                f"Refunds exceed pot for raffle {raffle.raffle_id} (pot={raffle.pot})",
                extra={"error_context": _context(event, raffle_id=raffle.raffle_id)}
            )

    if raffle.status in REFUNDABLE:
        await loader.transition(raffle.raffle_id, REFUNDABLE, RaffleStatus.REFUNDING)
    elif raffle.status != RaffleStatus.REFUNDING and first_delivery:
        logger.warning(
            f"Refund claimed for raffle {raffle.raffle_id} in status {raffle.status.value}",
            extra={"error_context": _context(event, raffle_id=raffle.raffle_id)}
        )
        return False


async def handle_archive_only(
    loader: ProjectionLoader, event: DecodedEvent, first_delivery: bool
) -> Optional[bool]:
    logger.debug(f"{event.name} archived at {event.log.transaction_hash}:{event.log.log_index}")


# ============================================================================
# Randomness provider
# ============================================================================

async def handle_provider_randomness_requested(
    loader: ProjectionLoader, event: DecodedEvent, first_delivery: bool
) -> Optional[bool]:
    request_id = to_decimal_text(event.require("requestId"))
    raffle_id = to_i64_or_none(event.require("raffleId"))

    await loader.insert_randomness_request({
        "request_id": request_id,
        "raffle_id": raffle_id,
        "raffle_address": normalize_address(event.require("raffle")),
        "provider_address": event.log.address,
        **_identity(event),
    })

    if raffle_id is None:
        logger.warning(
            f"Provider request {request_id} carries a raffle id that does not fit 64 bits",
            extra={"error_context": _context(event, request_id=request_id)}
        )
        return

    await loader.stamp_raffle(
        raffle_id,
        provider_request_id=request_id,
        provider_request_tx=event.log.transaction_hash,
    )


async def handle_provider_randomness_delivered(
    loader: ProjectionLoader, event: DecodedEvent, first_delivery: bool
) -> Optional[bool]:
    request_id = to_decimal_text(event.require("requestId"))
    raffle_address = normalize_address(event.require("raffle"))

    proof = event.get("proof")
    if proof is None:
        proof_data = None
    elif isinstance(proof, (bytes, bytearray)):
        proof_data = to_hex_data(proof)
    else:
        raise MalformedProofError(
            f"Proof for request {request_id} is {type(proof).__name__}, expected bytes",
            context=_context(event, request_id=request_id)
        )

    await loader.insert_randomness_fulfillment({
        "request_id": request_id,
        "raffle_address": raffle_address,
        "provider_address": event.log.address,
        "randomness": to_decimal_text(event.require("randomness")),
        "proof_data": proof_data,
        **_identity(event),
    })

    # Delivery carries no raffle id, so the raffle is matched by address
    await loader.stamp_raffle_by_address(
        raffle_address,
        provider_fulfill_tx=event.log.transaction_hash,
        proof_data=proof_data,
    )


HANDLERS: Dict[EventKind, Handler] = {
    EventKind.RAFFLE_CREATED: handle_raffle_created,
    EventKind.TICKETS_BOUGHT: handle_tickets_bought,
    EventKind.RAFFLE_CLOSED: handle_raffle_closed,
    EventKind.RANDOMNESS_REQUESTED: handle_randomness_requested,
    EventKind.RANDOMNESS_FULFILLED: handle_randomness_fulfilled,
    EventKind.WINNER_SELECTED: handle_winner_selected,
    EventKind.REFUND_CLAIMED: handle_refund_claimed,
    EventKind.REFUNDS_STARTED: handle_refunds_started,
    EventKind.KEEPER_UPDATED: handle_archive_only,
    EventKind.PAYOUTS_COMPLETED: handle_archive_only,
    EventKind.PROVIDER_RANDOMNESS_REQUESTED: handle_provider_randomness_requested,
    EventKind.PROVIDER_RANDOMNESS_DELIVERED: handle_provider_randomness_delivered,
}
