"""
Data Ingestion - Log Normalizer.

============================================================
RESPONSIBILITY
============================================================
Turns a raw log plus its transaction, receipt and block header
into an ActivityEvent.

- Parses hex quantities to int
- Lowercases addresses
- Resolves the event name from the first topic
- Decodes typed payloads with eth_abi

============================================================
DESIGN PRINCIPLES
============================================================
- Pure: no I/O, no clock, same input gives the same event
- Missing or garbled mandatory fields raise NormalizationError
- An unknown first topic is not an error ("Unknown")
- An undecodable payload of a known event is kept as opaque

============================================================
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError

from core.exceptions import NormalizationError
from data_ingestion.payloads import EventPayload, OpaquePayload, UnknownPayload, build_payload
from data_ingestion.signatures import EventSignature, EventSignatureTable
from data_ingestion.types import (
    UNKNOWN_EVENT,
    ActivityEvent,
    ExecutionStatus,
    extract_participants,
    normalize_address,
)


logger = logging.getLogger(__name__)


__all__ = ["LogNormalizer", "extract_participants", "parse_quantity"]


def parse_quantity(value: Any, field_name: str) -> int:
    """Parse a JSON-RPC quantity (0x-hex string or int) to int."""
    if isinstance(value, bool):
        raise NormalizationError(f"Invalid quantity for {field_name}", field_name, value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        try:
            return int(text, 16) if text.startswith("0x") else int(text)
        except ValueError as e:
            raise NormalizationError(
                f"Invalid quantity for {field_name}", field_name, value, cause=e
            )
    raise NormalizationError(f"Missing or invalid {field_name}", field_name, value)


def _require(obj: Mapping[str, Any], key: str, source: str) -> Any:
    value = obj.get(key)
    if value is None or value == "":
        raise NormalizationError(f"{source} is missing {key}", field_name=f"{source}.{key}")
    return value


def _hex_bytes(value: str, field_name: str) -> bytes:
    text = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise NormalizationError(f"Invalid hex in {field_name}", field_name, value, cause=e)


def _clean_abi_value(abi_type: str, value: Any) -> Any:
    if abi_type == "address":
        return str(value).lower()
    if isinstance(value, bytes):
        return "0x" + value.hex()
    if isinstance(value, (list, tuple)):
        return [_clean_abi_value(abi_type.rstrip("[]"), v) for v in value]
    return value


class LogNormalizer:
    """
    Normalizes raw chain objects into ActivityEvents.

    Usage:
        normalizer = LogNormalizer(EventSignatureTable())
        event = normalizer.normalize(log, transaction, receipt, block)
    """

    def __init__(self, signature_table: Optional[EventSignatureTable] = None) -> None:
        self._signatures = signature_table or EventSignatureTable()

    @property
    def signatures(self) -> EventSignatureTable:
        return self._signatures

    def normalize(
        self,
        log: Mapping[str, Any],
        transaction: Mapping[str, Any],
        receipt: Mapping[str, Any],
        block: Mapping[str, Any],
    ) -> ActivityEvent:
        """
        Build the ActivityEvent for one log.

        Raises:
            NormalizationError: a mandatory field is missing or garbled
        """
        tx_hash = normalize_address(_require(log, "transactionHash", "log"))
        contract = normalize_address(_require(log, "address", "log"))
        sender = normalize_address(_require(transaction, "from", "transaction"))
        recipient = normalize_address(transaction.get("to"))

        topics = log.get("topics") or []
        if not isinstance(topics, (list, tuple)):
            raise NormalizationError("log.topics is not a list", "log.topics", topics)
        topics = tuple(str(t).lower() for t in topics)
        data = str(log.get("data") or "0x").lower()

        signature_hash = topics[0] if topics else None
        signature = self._signatures.lookup(signature_hash)
        if signature is None:
            event_name = UNKNOWN_EVENT
            payload: EventPayload = UnknownPayload(signature_hash)
        else:
            event_name = signature.name
            payload = self._decode_payload(signature, topics, data, tx_hash)

        status_raw = receipt.get("status")
        try:
            status_ok = status_raw is not None and parse_quantity(status_raw, "receipt.status") == 1
        except NormalizationError:
            status_ok = False

        block_ts = parse_quantity(_require(block, "timestamp", "block"), "block.timestamp")
        try:
            timestamp = datetime.fromtimestamp(block_ts, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise NormalizationError("block.timestamp out of range", "block.timestamp", block_ts, cause=e)

        return ActivityEvent(
            block_number=parse_quantity(_require(log, "blockNumber", "log"), "log.blockNumber"),
            transaction_hash=tx_hash,
            transaction_index=parse_quantity(log.get("transactionIndex", 0), "log.transactionIndex"),
            log_index=parse_quantity(_require(log, "logIndex", "log"), "log.logIndex"),
            contract_address=contract,
            sender=sender,
            recipient=recipient,
            value=parse_quantity(transaction.get("value", 0), "transaction.value"),
            gas_used=parse_quantity(_require(receipt, "gasUsed", "receipt"), "receipt.gasUsed"),
            status=ExecutionStatus.SUCCESS if status_ok else ExecutionStatus.FAILURE,
            timestamp=timestamp,
            topics=topics,
            data=data,
            signature_hash=signature_hash,
            event_name=event_name,
            payload=payload,
        )

    def participants(self, event: ActivityEvent) -> Tuple[str, ...]:
        return extract_participants(event.sender, event.recipient, event.contract_address)

    # ─────────────────────────────────────────────────────────────
    # ABI decoding
    # ─────────────────────────────────────────────────────────────

    def _decode_payload(
        self,
        signature: EventSignature,
        topics: Tuple[str, ...],
        data: str,
        tx_hash: str,
    ) -> EventPayload:
        try:
            args = self.decode_args(signature, topics, data)
            return build_payload(signature.name, args)
        except (DecodingError, NormalizationError, KeyError, ValueError, TypeError) as e:
            logger.debug(
                f"[normalizer] Opaque payload for {signature.name} in {tx_hash}: {e}"
            )
            return OpaquePayload()

    def decode_args(
        self,
        signature: EventSignature,
        topics: Tuple[str, ...],
        data: str,
    ) -> Dict[str, Any]:
        """Decode indexed topics and the data section into a name -> value map."""
        indexed = signature.indexed_params
        if len(topics) - 1 != len(indexed):
            raise ValueError(
                f"{signature.name} expects {len(indexed)} indexed topics, got {len(topics) - 1}"
            )

        args: Dict[str, Any] = {}
        for param, topic in zip(indexed, topics[1:]):
            (value,) = abi_decode([param.abi_type], _hex_bytes(topic, "log.topics"))
            args[param.name] = _clean_abi_value(param.abi_type, value)

        data_params = signature.data_params
        if data_params:
            types: List[str] = [p.abi_type for p in data_params]
            values = abi_decode(types, _hex_bytes(data, "log.data"))
            for param, value in zip(data_params, values):
                args[param.name] = _clean_abi_value(param.abi_type, value)
        return args
