"""
ABI event registry: maps topic0 to a decoder for each event the indexer projects.

Factory and raffle interfaces are required. The randomness provider interface
is optional; when it is missing its events simply never match.
"""

import enum
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import decode_hex, keccak

from core.exceptions import AbiLoadError, DecodeError, MissingParameterError
from schemas.chain import ChainLog

logger = logging.getLogger(__name__)

FACTORY = "RaffleFactory"
RAFFLE = "Raffle"
PROVIDER = "DrandRandomnessProvider"


class EventKind(str, enum.Enum):
    """Every event the processor knows how to project"""
    RAFFLE_CREATED = "raffle_created"
    TICKETS_BOUGHT = "tickets_bought"
    RAFFLE_CLOSED = "raffle_closed"
    RANDOMNESS_REQUESTED = "randomness_requested"
    RANDOMNESS_FULFILLED = "randomness_fulfilled"
    WINNER_SELECTED = "winner_selected"
    REFUND_CLAIMED = "refund_claimed"
    REFUNDS_STARTED = "refunds_started"
    KEEPER_UPDATED = "keeper_updated"
    PAYOUTS_COMPLETED = "payouts_completed"
    PROVIDER_RANDOMNESS_REQUESTED = "provider_randomness_requested"
    PROVIDER_RANDOMNESS_DELIVERED = "provider_randomness_delivered"


@dataclass(frozen=True)
class EventSpec:
    kind: EventKind
    contract: str
    event_name: str
    required: Tuple[str, ...] = ()


EVENT_SPECS: Tuple[EventSpec, ...] = (
    EventSpec(
        EventKind.RAFFLE_CREATED, FACTORY, "RaffleCreated",
        ("raffleId", "raffle", "creator", "endTime", "ticketPrice", "maxTickets", "feeBps", "feeRecipient"),
    ),
    EventSpec(
        EventKind.TICKETS_BOUGHT, RAFFLE, "TicketsBought",
        ("raffleId", "buyer", "startIndex", "endIndex", "count", "amountPaid"),
    ),
    EventSpec(EventKind.RAFFLE_CLOSED, RAFFLE, "RaffleClosed", ("raffleId", "totalTickets", "pot")),
    EventSpec(EventKind.RANDOMNESS_REQUESTED, RAFFLE, "RandomnessRequested", ("raffleId", "requestId")),
    EventSpec(
        EventKind.RANDOMNESS_FULFILLED, RAFFLE, "RandomnessFulfilled",
        ("raffleId", "requestId", "randomness"),
    ),
    EventSpec(EventKind.WINNER_SELECTED, RAFFLE, "WinnerSelected", ("raffleId", "winner", "winningIndex")),
    EventSpec(EventKind.REFUND_CLAIMED, RAFFLE, "RefundClaimed", ("raffleId", "buyer", "amount")),
    EventSpec(EventKind.REFUNDS_STARTED, RAFFLE, "RefundsStarted", ("raffleId",)),
    EventSpec(EventKind.KEEPER_UPDATED, RAFFLE, "KeeperUpdated"),
    EventSpec(EventKind.PAYOUTS_COMPLETED, RAFFLE, "PayoutsCompleted"),
    EventSpec(
        EventKind.PROVIDER_RANDOMNESS_REQUESTED, PROVIDER, "RandomnessRequested",
        ("requestId", "raffleId", "raffle"),
    ),
    EventSpec(
        EventKind.PROVIDER_RANDOMNESS_DELIVERED, PROVIDER, "RandomnessDelivered",
        ("requestId", "randomness", "raffle"),
    ),
)

ARTIFACT_FILES = {
    FACTORY: "RaffleFactory.json",
    RAFFLE: "Raffle.json",
    PROVIDER: "DrandRandomnessProvider.json",
}


def canonical_type(param: Dict[str, Any]) -> str:
    """ABI type as it appears in the event signature (tuples expanded)"""
    abi_type = param["type"]
    if abi_type.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def is_hashed_in_topic(abi_type: str) -> bool:
    """Indexed strings, bytes, arrays and structs are stored as keccak hashes"""
    return abi_type in ("string", "bytes") or abi_type.endswith("]") or abi_type.startswith("(")


def _normalize_value(abi_type: str, value: Any) -> Any:
    if abi_type == "address":
        return value.lower()
    return value


@dataclass
class DecodedEvent:
    """A recognized log with its named parameters"""
    kind: EventKind
    name: str
    params: Dict[str, Any]
    log: ChainLog

    def require(self, name: str) -> Any:
        if name not in self.params:
            raise MissingParameterError(
                f"{self.name} is missing parameter {name}",
                context={"event": self.name, "parameter": name, "tx_hash": self.log.transaction_hash}
            )
        return self.params[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.params.get(name, default)


class EventDecoder:
    """Decodes one event's topics and data with eth-abi"""

    def __init__(self, spec: EventSpec, abi_event: Dict[str, Any]):
        self.spec = spec
        self.inputs: List[Dict[str, Any]] = list(abi_event.get("inputs", []))
        types = ",".join(canonical_type(p) for p in self.inputs)
        self.signature = f"{spec.event_name}({types})"
        self.topic0 = "0x" + keccak(text=self.signature).hex()
        self.indexed = [p for p in self.inputs if p.get("indexed")]
        self.non_indexed = [p for p in self.inputs if not p.get("indexed")]

    def decode(self, log: ChainLog) -> DecodedEvent:
        topics = log.topics[1:]
        if len(topics) != len(self.indexed):
            raise DecodeError(
                f"{self.spec.event_name} expects {len(self.indexed)} indexed topics, got {len(topics)}",
                context={"event": self.spec.event_name, "tx_hash": log.transaction_hash}
            )

        params: Dict[str, Any] = {}
        try:
            for param, topic in zip(self.indexed, topics):
                abi_type = canonical_type(param)
                if is_hashed_in_topic(abi_type):
                    params[param["name"]] = topic
                else:
                    value = decode([abi_type], decode_hex(topic))[0]
                    params[param["name"]] = _normalize_value(abi_type, value)

            data_types = [canonical_type(p) for p in self.non_indexed]
            if data_types:
                values = decode(data_types, decode_hex(log.data))
                for param, abi_type, value in zip(self.non_indexed, data_types, values):
                    params[param["name"]] = _normalize_value(abi_type, value)
        except (DecodingError, ValueError) as e:
            raise DecodeError(
                f"Failed to decode {self.spec.event_name}",
                context={"event": self.spec.event_name, "tx_hash": log.transaction_hash},
                original_exception=e
            )

        decoded = DecodedEvent(kind=self.spec.kind, name=self.spec.event_name, params=params, log=log)
        for name in self.spec.required:
            decoded.require(name)
        return decoded


def load_abi(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Load a contract ABI from a Hardhat artifact ({"abi": [...]}) or a bare ABI array.

    Raises:
        AbiLoadError: file missing, unreadable or not an ABI
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            content = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise AbiLoadError(
            f"Failed to read ABI artifact {path.name}",
            context={"path": str(path)},
            original_exception=e
        )

    abi = content.get("abi") if isinstance(content, dict) else content
    if not isinstance(abi, list):
        raise AbiLoadError(
            f"ABI artifact {path.name} has no 'abi' array",
            context={"path": str(path)}
        )
    return abi


def _find_event(abi: List[Dict[str, Any]], name: str) -> Optional[Dict[str, Any]]:
    for entry in abi:
        if entry.get("type") == "event" and entry.get("name") == name:
            return entry
    return None


class EventRegistry:
    """
    topic0 -> EventDecoder.

    Usage:
        registry = EventRegistry.from_artifacts("abis")
        decoded = registry.decode(log)   # None for unknown events
    """

    def __init__(self, decoders: Dict[str, EventDecoder]):
        self._decoders = decoders

    @classmethod
    def build(
        cls,
        factory_abi: List[Dict[str, Any]],
        raffle_abi: List[Dict[str, Any]],
        provider_abi: Optional[List[Dict[str, Any]]] = None
    ) -> "EventRegistry":
        abis = {FACTORY: factory_abi, RAFFLE: raffle_abi, PROVIDER: provider_abi}
        decoders: Dict[str, EventDecoder] = {}

        for spec in EVENT_SPECS:
            abi = abis[spec.contract]
            if abi is None:
                continue

            abi_event = _find_event(abi, spec.event_name)
            if abi_event is None:
                if spec.contract == PROVIDER:
                    logger.warning(f"Provider ABI has no {spec.event_name} event; skipping it")
                    continue
                raise AbiLoadError(
                    f"Required event {spec.event_name} missing from {spec.contract} ABI",
                    context={"contract": spec.contract, "event": spec.event_name}
                )

            decoder = EventDecoder(spec, abi_event)
            existing = decoders.get(decoder.topic0)
            if existing is not None:
                raise AbiLoadError(
                    f"Signature {decoder.signature} registered twice",
                    context={
                        "event": spec.event_name,
                        "contract": spec.contract,
                        "conflicts_with": existing.spec.contract,
                    }
                )
            decoders[decoder.topic0] = decoder

        logger.info(f"Event registry loaded with {len(decoders)} event signatures")
        return cls(decoders)

    @classmethod
    def from_artifacts(cls, abi_dir: Union[str, Path]) -> "EventRegistry":
        abi_dir = Path(abi_dir)
        factory_abi = load_abi(abi_dir / ARTIFACT_FILES[FACTORY])
        raffle_abi = load_abi(abi_dir / ARTIFACT_FILES[RAFFLE])

        provider_abi = None
        provider_path = abi_dir / ARTIFACT_FILES[PROVIDER]
        if provider_path.exists():
            try:
                provider_abi = load_abi(provider_path)
            except AbiLoadError as e:
                logger.warning(
                    f"Randomness provider ABI unusable, provider events disabled: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
        else:
            logger.info("No randomness provider ABI found; provider events disabled")

        return cls.build(factory_abi, raffle_abi, provider_abi)

    @property
    def kinds(self) -> List[EventKind]:
        return [d.spec.kind for d in self._decoders.values()]

    def has_provider_events(self) -> bool:
        return any(d.spec.contract == PROVIDER for d in self._decoders.values())

    def decoder_for(self, kind: EventKind) -> Optional[EventDecoder]:
        for decoder in self._decoders.values():
            if decoder.spec.kind == kind:
                return decoder
        return None

    def lookup(self, topic0: Optional[str]) -> Optional[EventDecoder]:
        if not topic0:
            return None
        return self._decoders.get(topic0.lower())

    def decode(self, log: ChainLog) -> Optional[DecodedEvent]:
        """Decode a log, or return None when its signature is not registered"""
        decoder = self.lookup(log.topic0)
        if decoder is None:
            return None
        return decoder.decode(log)

    def __len__(self) -> int:
        return len(self._decoders)
