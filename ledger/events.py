"""
DeviceRegistered log parsing.

Each receipt log is examined in order and yields either a ParsedEvent
(carrying the new device id) or a NoMatch (carrying the reason the log was
rejected). Scanning stops at the first ParsedEvent.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Mapping, Union

logger = logging.getLogger(__name__)

REGISTRATION_EVENT = "DeviceRegistered"

# Takes a raw receipt log, returns the decoded event (web3 AttributeDict
# with "event" and "args"). Raises on a topic/ABI mismatch.
LogDecoder = Callable[[Mapping[str, Any]], Mapping[str, Any]]


@dataclass(frozen=True)
class ParsedEvent:
    device_id: int
    log_index: int


@dataclass(frozen=True)
class NoMatch:
    reason: str
    log_index: int


LogParseResult = Union[ParsedEvent, NoMatch]


def _same_address(a: str, b: str) -> bool:
    return (a or "").lower() == (b or "").lower()


def parse_registration_log(
    log: Mapping[str, Any],
    contract_address: str,
    decode: LogDecoder,
    log_index: int = 0,
) -> LogParseResult:
    """
    Try to read a device id out of one receipt log.

    Args:
        log: Raw receipt log (needs 'address', 'topics', 'data').
        contract_address: Address of the EWasteTracker contract.
        decode: Decoder for DeviceRegistered logs.
        log_index: Position of the log in the receipt, for diagnostics.

    Returns:
        ParsedEvent when the log is a DeviceRegistered event emitted by our
        contract, NoMatch otherwise.
    """
    address = log.get("address", "")
    if not _same_address(address, contract_address):
        return NoMatch(reason=f"address {address} is not the tracker contract", log_index=log_index)

    try:
        event = decode(log)
    except Exception as e:
        return NoMatch(reason=f"decode failed: {e}", log_index=log_index)

    name = event.get("event")
    if name != REGISTRATION_EVENT:
        return NoMatch(reason=f"unexpected event {name!r}", log_index=log_index)

    args = event.get("args") or {}
    raw_id = args.get("deviceId")
    if raw_id is None:
        return NoMatch(reason="event has no deviceId argument", log_index=log_index)

    try:
        device_id = int(raw_id)
    except (TypeError, ValueError):
        return NoMatch(reason=f"deviceId {raw_id!r} is not an integer", log_index=log_index)

    return ParsedEvent(device_id=device_id, log_index=log_index)


def find_registration_event(
    logs: Iterable[Mapping[str, Any]],
    contract_address: str,
    decode: LogDecoder,
) -> Union[ParsedEvent, List[NoMatch]]:
    """
    Scan receipt logs for the first DeviceRegistered event.

    Returns:
        The first ParsedEvent, or the list of NoMatch results (one per log,
        empty if the receipt had no logs) when nothing matched.
    """
    misses: List[NoMatch] = []
    for index, log in enumerate(logs):
        result = parse_registration_log(log, contract_address, decode, log_index=index)
        if isinstance(result, ParsedEvent):
            logger.debug("DeviceRegistered found at log %d: id=%d", index, result.device_id)
            return result
        logger.debug("Log %d skipped: %s", index, result.reason)
        misses.append(result)
    return misses
