# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK - Configuration

Environment-driven configuration. A `.env` file, when present, is read first
with "set if not already set" semantics, so real environment variables win.

NEVER commit PRIVATE_KEY. Use Config.masked() for anything that is logged.
"""

import logging
import os
from dataclasses import dataclass, asdict, field
from typing import Dict, Mapping, Optional

from .authorization import DEFAULT_DECRYPTION_VERIFIER, DEFAULT_DURATION_DAYS
from .amounts import TOKEN_DECIMALS

log = logging.getLogger(__name__)

# =============================================================================
# NETWORK PRESETS
# =============================================================================

NETWORKS = {
    "hardhat": {
        "name": "Hardhat",
        "rpc": "http://localhost:8545",
        "chain_id": 31337,
    },
    "anvil": {
        "name": "Anvil",
        "rpc": "http://localhost:8545",
        "chain_id": 31337,
    },
    "sepolia": {
        "name": "Sepolia",
        "rpc": "https://sepolia.infura.io/v3/{infura_api_key}",
        "chain_id": 11155111,
    },
}

DEFAULT_NETWORK = "hardhat"

# Well-known development keys (hardhat/anvil only, NEVER fund on a public chain)
LOCAL_DEV_KEYS = [
    "0x1000000000000000000000000000000000000000000000000000000000000001",
    "0x2000000000000000000000000000000000000000000000000000000000000002",
    "0x3000000000000000000000000000000000000000000000000000000000000003",
    "0x4000000000000000000000000000000000000000000000000000000000000004",
    "0x5000000000000000000000000000000000000000000000000000000000000005",
    "0x6000000000000000000000000000000000000000000000000000000000000006",
    "0x7000000000000000000000000000000000000000000000000000000000000007",
    "0x8000000000000000000000000000000000000000000000000000000000000008",
    "0x9000000000000000000000000000000000000000000000000000000000000009",
]

_SECRET_FIELDS = ("private_key", "infura_api_key")


def mask_secret(secret: str, visible_prefix: int = 8, visible_suffix: int = 4) -> str:
    """Mask a secret for safe logging. NEVER log full keys, signatures or handles."""
    if not secret or len(secret) <= visible_prefix + visible_suffix:
        return "***"
    return f"{secret[:visible_prefix]}...{secret[-visible_suffix:]}"


def load_env_file(path: str, environ: Optional[Dict[str, str]] = None) -> int:
    """
    Load KEY=VALUE lines from a .env file without overriding existing keys.

    Returns:
        Number of lines read (0 if the file does not exist)
    """
    environ = os.environ if environ is None else environ
    if not path or not os.path.exists(path):
        return 0
    count = 0
    with open(path) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, value = line.split("=", 1)
                environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))
                count += 1
    log.debug(f"Loaded {count} entries from {path}")
    return count


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "")
    if raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}")


# =============================================================================
# CONFIG
# =============================================================================

@dataclass
class Config:
    network: str = DEFAULT_NETWORK
    rpc_url: str = NETWORKS[DEFAULT_NETWORK]["rpc"]
    chain_id: int = NETWORKS[DEFAULT_NETWORK]["chain_id"]
    private_key: str = field(default="", repr=False)
    infura_api_key: str = field(default="", repr=False)

    # Deployed contracts (empty = local in-process deployment)
    token_address: str = ""
    distributor_address: str = ""

    # Coprocessor gateway
    relayer_url: str = ""
    decryption_verifier: str = DEFAULT_DECRYPTION_VERIFIER
    gateway_chain_id: int = 0       # 0 = same as chain_id

    duration_days: int = DEFAULT_DURATION_DAYS
    token_decimals: int = TOKEN_DECIMALS

    request_timeout: int = 30       # seconds, relayer HTTP calls
    receipt_timeout: int = 120      # seconds, transaction confirmation
    http_port: int = 8090

    @property
    def is_local(self) -> bool:
        """True when no deployed contracts are configured."""
        return not (self.token_address and self.distributor_address)

    @property
    def decryption_chain_id(self) -> int:
        return self.gateway_chain_id or self.chain_id

    @classmethod
    def from_env(cls, env: Optional[Dict[str, str]] = None,
                 env_file: Optional[str] = None) -> "Config":
        """
        Build config from environment variables.

        Args:
            env: Mapping to read (default: os.environ)
            env_file: Optional .env file loaded into `env` first

        Raises:
            ValueError: unknown network or malformed integer
        """
        env = os.environ if env is None else env
        if env_file:
            load_env_file(env_file, env)

        network = env.get("DISTRIBUTOR_NETWORK", DEFAULT_NETWORK).strip().lower()
        if network not in NETWORKS:
            raise ValueError(
                f"Unknown network {network!r} (choices: {', '.join(NETWORKS)})"
            )
        preset = NETWORKS[network]
        infura_api_key = env.get("INFURA_API_KEY", "")

        rpc_url = env.get("RPC_URL", "")
        if not rpc_url:
            rpc_url = preset["rpc"].format(infura_api_key=infura_api_key)

        return cls(
            network=network,
            rpc_url=rpc_url,
            chain_id=preset["chain_id"],
            private_key=env.get("PRIVATE_KEY", ""),
            infura_api_key=infura_api_key,
            token_address=env.get("TOKEN_ADDRESS", ""),
            distributor_address=env.get("DISTRIBUTOR_ADDRESS", ""),
            relayer_url=env.get("RELAYER_URL", ""),
            decryption_verifier=env.get("DECRYPTION_VERIFIER", "") or DEFAULT_DECRYPTION_VERIFIER,
            gateway_chain_id=_int(env, "GATEWAY_CHAIN_ID", 0),
            duration_days=_int(env, "DURATION_DAYS", DEFAULT_DURATION_DAYS),
            token_decimals=_int(env, "TOKEN_DECIMALS", TOKEN_DECIMALS),
            request_timeout=_int(env, "REQUEST_TIMEOUT", 30),
            receipt_timeout=_int(env, "RECEIPT_TIMEOUT", 120),
            http_port=_int(env, "HTTP_PORT", 8090),
        )

    def masked(self) -> dict:
        """Config as dict with secrets masked (safe for logs)."""
        data = asdict(self)
        for key in _SECRET_FIELDS:
            data[key] = mask_secret(data[key]) if data[key] else ""
        if self.infura_api_key:
            data["rpc_url"] = self.rpc_url.replace(self.infura_api_key, "***")
        return data
