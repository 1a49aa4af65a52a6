"""
Runtime configuration, read from the environment (and a local .env file).
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://rpc-amoy.polygon.technology"
DEFAULT_DATA_STORE_PATH = os.path.join(
    os.path.dirname(os.path.dirname(__file__)), "data-store.json"
)
DEFAULT_RECEIPT_TIMEOUT = 120.0   # seconds to wait for a transaction receipt
DEFAULT_FRONTEND_URL = "http://localhost:3000"
DEFAULT_PORT = 5000


@dataclass
class Settings:
    rpc_url: str
    private_key: Optional[str]
    contract_address: Optional[str]
    data_store_path: str
    receipt_timeout: float
    frontend_url: str
    port: int = DEFAULT_PORT

    def require_ledger_credentials(self) -> None:
        """Fail fast when the signing key or contract address is missing."""
        if not self.private_key:
            raise RuntimeError("PRIVATE_KEY not found in environment variables")
        if not self.contract_address:
            raise RuntimeError("CONTRACT_ADDRESS not found in environment variables")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default


def load_settings() -> Settings:
    return Settings(
        rpc_url=os.getenv("RPC_URL") or os.getenv("MUMBAI_RPC_URL") or DEFAULT_RPC_URL,
        private_key=os.getenv("PRIVATE_KEY"),
        contract_address=os.getenv("CONTRACT_ADDRESS"),
        data_store_path=os.getenv("DATA_STORE_PATH", DEFAULT_DATA_STORE_PATH),
        receipt_timeout=_float_env("RECEIPT_TIMEOUT_SECONDS", DEFAULT_RECEIPT_TIMEOUT),
        frontend_url=os.getenv("FRONTEND_URL", DEFAULT_FRONTEND_URL),
        port=int(_float_env("PORT", DEFAULT_PORT)),
    )
