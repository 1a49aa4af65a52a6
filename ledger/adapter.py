"""
EWasteTracker Ledger Adapter.

Wraps a web3 contract handle for the EWasteTracker contract. Submits
registration and status-update transactions, waits for their receipts, and
reads device records back. Every failure is tagged with the operation name
and raised as LedgerCallFailed, except for two deliberate degradations:

  - getTotalDevices is bounded by a 15 second timer and returns 0 on timeout.
  - The new device id falls back to the contract's counter when no receipt
    log decodes as DeviceRegistered.
"""

import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, List, Mapping, Optional

from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError
from web3.middleware import SignAndSendRawMiddlewareBuilder

from ledger.events import NoMatch, ParsedEvent, find_registration_event
from ledger.models import DeviceRecord, RegistrationReceipt
from tracker.errors import IdentifierResolutionFailed, LedgerCallFailed, NotFound

logger = logging.getLogger(__name__)

ABI_PATH = os.path.join(
    os.path.dirname(os.path.dirname(__file__)),
    "config", "ewaste_tracker_abi.json"
)

TOTAL_DEVICES_TIMEOUT = 15.0   # seconds before getTotalDevices degrades to 0
RECEIPT_POLL_INTERVAL = 12.0   # seconds between receipt polls
DEFAULT_RECEIPT_TIMEOUT = 120.0

_CONTRACT_ABI: Optional[list] = None


def _load_abi() -> list:
    """Load the contract ABI from disk. Fail fast if missing."""
    global _CONTRACT_ABI
    if _CONTRACT_ABI is not None:
        return _CONTRACT_ABI

    if not os.path.exists(ABI_PATH):
        raise FileNotFoundError(
            f"CRITICAL: ewaste_tracker_abi.json not found at {ABI_PATH}. "
            "Cannot build ledger adapter."
        )

    with open(ABI_PATH, "r") as f:
        _CONTRACT_ABI = json.load(f)

    logger.info("Contract ABI loaded from %s", ABI_PATH)
    return _CONTRACT_ABI


def normalize_address(address: str) -> str:
    """Add the 0x prefix when missing."""
    address = address.strip()
    if not address.startswith("0x"):
        address = "0x" + address
    return address


def _to_hex(value: Any) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else "0x" + value
    return Web3.to_hex(value)


def _normalize_record(raw: Any) -> DeviceRecord:
    """
    Coerce a getDevice() result into a DeviceRecord.

    web3 returns the Device struct as a positional tuple
    (id, deviceType, status, registeredBy, registeredAt, lastUpdated);
    a mapping with the struct field names is accepted too.
    """
    if isinstance(raw, Mapping):
        fields = (
            raw["id"], raw["deviceType"], raw["status"],
            raw["registeredBy"], raw["registeredAt"], raw["lastUpdated"],
        )
    else:
        fields = tuple(raw)
        if len(fields) != 6:
            raise ValueError(f"getDevice returned {len(fields)} fields, expected 6")

    device_id, device_type, status, owner, registered_at, last_updated = fields
    return DeviceRecord(
        id=int(device_id),
        device_type=str(device_type),
        status=str(status),
        owner=str(owner),
        registered_at=int(registered_at),
        last_updated=int(last_updated),
    )


class LedgerAdapter:
    """Register/update/read devices on the EWasteTracker contract."""

    def __init__(
        self,
        w3,
        contract,
        account_address: str,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
        total_devices_timeout: float = TOTAL_DEVICES_TIMEOUT,
    ):
        self._w3 = w3
        self._contract = contract
        self._account_address = account_address
        self._receipt_timeout = receipt_timeout
        self._total_devices_timeout = total_devices_timeout
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="ledger-count")

    @classmethod
    def from_settings(cls, settings) -> "LedgerAdapter":
        """
        Build an adapter with a signing account from runtime settings.

        Raises:
            RuntimeError: If PRIVATE_KEY or CONTRACT_ADDRESS is not configured.
        """
        settings.require_ledger_credentials()

        w3 = Web3(Web3.HTTPProvider(settings.rpc_url, request_kwargs={"timeout": 30}))
        account = Account.from_key(settings.private_key)
        w3.middleware_onion.inject(SignAndSendRawMiddlewareBuilder.build(account), layer=0)
        w3.eth.default_account = account.address

        address = Web3.to_checksum_address(normalize_address(settings.contract_address))
        contract = w3.eth.contract(address=address, abi=_load_abi())

        logger.info("Ledger adapter initialised: contract=%s wallet=%s rpc=%s",
                    address, account.address, settings.rpc_url)
        return cls(w3, contract, account.address, receipt_timeout=settings.receipt_timeout)

    @property
    def contract_address(self) -> str:
        return self._contract.address

    @property
    def account_address(self) -> str:
        return self._account_address

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    # ── writes ───────────────────────────────────────────────────────────────

    def _wait_for_receipt(self, tx_hash, operation: str) -> Mapping[str, Any]:
        logger.info("%s submitted: tx=%s", operation, _to_hex(tx_hash))
        receipt = self._w3.eth.wait_for_transaction_receipt(
            tx_hash,
            timeout=self._receipt_timeout,
            poll_latency=RECEIPT_POLL_INTERVAL,
        )
        if receipt.get("status") == 0:
            raise LedgerCallFailed(operation, RuntimeError(f"transaction {_to_hex(tx_hash)} reverted"))
        logger.info("%s confirmed: tx=%s logs=%d",
                    operation, _to_hex(receipt["transactionHash"]), len(receipt.get("logs", [])))
        return receipt

    def register_device(self, device_type: str) -> RegistrationReceipt:
        """
        Register a device and resolve the id the contract assigned to it.

        Args:
            device_type: Device type string stored on-chain ('Laptop', 'Phone', 'TV').

        Returns:
            RegistrationReceipt with the new id and transaction hash.

        Raises:
            LedgerCallFailed: If submission or confirmation fails.
            IdentifierResolutionFailed: If the transaction confirmed but the
                id could not be read from the logs nor the counter.
        """
        try:
            tx_hash = self._contract.functions.registerDevice(device_type).transact(
                {"from": self._account_address}
            )
            receipt = self._wait_for_receipt(tx_hash, "registerDevice")
        except LedgerCallFailed:
            raise
        except Exception as e:
            logger.error("registerDevice failed: %s", e)
            raise LedgerCallFailed("registerDevice", e) from e

        tx_ref = _to_hex(receipt["transactionHash"])
        decode = self._contract.events.DeviceRegistered().process_log
        result = find_registration_event(receipt.get("logs", []), self.contract_address, decode)

        if isinstance(result, ParsedEvent):
            logger.info("Device registered with id %d (from event)", result.device_id)
            return RegistrationReceipt(device_id=result.device_id, tx_hash=tx_ref, resolved_via="event")

        device_id = self._resolve_id_from_counter(result)
        return RegistrationReceipt(device_id=device_id, tx_hash=tx_ref, resolved_via="counter")

    def _resolve_id_from_counter(self, misses: List[NoMatch]) -> int:
        """Fallback: the newest id equals the contract's device counter."""
        logger.warning(
            "DeviceRegistered not found in %d receipt log(s), falling back to getTotalDevices",
            len(misses),
        )
        try:
            total = int(self._contract.functions.getTotalDevices().call())
        except Exception as e:
            logger.error("Counter fallback failed: %s", e)
            raise IdentifierResolutionFailed(e) from e

        if total < 1:
            raise IdentifierResolutionFailed(
                RuntimeError(f"getTotalDevices returned {total} after a confirmed registration")
            )
        logger.info("Device registered with id %d (from counter)", total)
        return total

    def update_status(self, device_id: int, new_status: str) -> str:
        """
        Set a device's status on-chain.

        Returns:
            The confirmed transaction hash.

        Raises:
            LedgerCallFailed: If submission or confirmation fails.
        """
        try:
            tx_hash = self._contract.functions.updateStatus(int(device_id), new_status).transact(
                {"from": self._account_address}
            )
            receipt = self._wait_for_receipt(tx_hash, "updateStatus")
        except LedgerCallFailed:
            raise
        except Exception as e:
            logger.error("updateStatus(%s, %s) failed: %s", device_id, new_status, e)
            raise LedgerCallFailed("updateStatus", e) from e
        return _to_hex(receipt["transactionHash"])

    # ── reads ────────────────────────────────────────────────────────────────

    def get_device(self, device_id: int) -> DeviceRecord:
        """
        Fetch a device record.

        Raises:
            NotFound: If the contract reverts the lookup (unknown id).
            LedgerCallFailed: For any other failure.
        """
        try:
            raw = self._contract.functions.getDevice(int(device_id)).call()
        except ContractLogicError as e:
            raise NotFound(f"Device {device_id} not found on ledger: {e}") from e
        except Exception as e:
            raise LedgerCallFailed("getDevice", e) from e

        try:
            return _normalize_record(raw)
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerCallFailed("getDevice", e) from e

    def get_total_devices(self) -> int:
        """
        Number of devices registered on-chain.

        Returns 0 (with a warning) when the node does not answer within
        TOTAL_DEVICES_TIMEOUT seconds.

        Raises:
            LedgerCallFailed: For any failure other than the timeout.
        """
        future = self._executor.submit(self._contract.functions.getTotalDevices().call)
        try:
            total = int(future.result(timeout=self._total_devices_timeout))
        except FutureTimeoutError:
            logger.warning(
                "getTotalDevices timed out after %.0fs, returning 0. Check RPC endpoint.",
                self._total_devices_timeout,
            )
            return 0
        except Exception as e:
            raise LedgerCallFailed("getTotalDevices", e) from e

        logger.debug("Total devices registered: %d", total)
        return total

    def get_balance(self) -> str:
        """Native-token balance of the signing wallet, in ether units."""
        try:
            wei = self._w3.eth.get_balance(self._account_address)
            return str(Web3.from_wei(wei, "ether"))
        except Exception as e:
            raise LedgerCallFailed("getBalance", e) from e
