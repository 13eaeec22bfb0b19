# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
Confidential Distributor SDK - Relayer Client

HTTP JSON client for the coprocessor gateway (relayer).

    POST /v1/input-proof   {contractAddress, userAddress, values}
                           -> {handles, inputProof}
    POST /v1/user-decrypt  {handleContractPairs, requestValidity,
                            contractAddresses, userAddress, signature,
                            publicKey, contractsChainId}
                           -> {values: {handle: "decimal"}}

Only public grant fields are sent. The ephemeral private key stays local.
"""

import logging
from typing import Any, Dict, Optional, Sequence

import requests

from .amounts import check_uint64_values
from .codec import encode_handle, normalize_address
from .dist_types import CiphertextBundle, DecryptionGrant, HandleContractPair
from .encryption import EncryptionService
from .errors import (
    AuthorizationFailed, GrantExpired, LengthMismatch, NetworkFailure, OutOfRange,
)

log = logging.getLogger(__name__)

_ERRORS_BY_CODE = {
    "grant_expired": GrantExpired,
    "unauthorized": AuthorizationFailed,
    "invalid_signature": AuthorizationFailed,
    "not_allowed": AuthorizationFailed,
    "out_of_range": OutOfRange,
}


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


class RelayerEncryptionService(EncryptionService):
    """
    EncryptionService backed by a remote relayer.

    Usage:
        relayer = RelayerEncryptionService("https://relayer.testnet.example")
        bundle = relayer.encrypt_batch(distributor, sender, [100, 200])
    """

    def __init__(self, url: str, timeout: int = 30,
                 session: Optional[requests.Session] = None):
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _call(self, path: str, payload: dict) -> Any:
        """POST a JSON payload and return the decoded response."""
        try:
            response = self.session.post(
                f"{self.url}{path}", json=payload, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise NetworkFailure(f"Relayer unreachable: {e}")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        error = body.get("error")
        if response.status_code in (401, 403):
            message = error.get("message") if isinstance(error, dict) else error
            code = error.get("code") if isinstance(error, dict) else None
            if code == "grant_expired":
                raise GrantExpired(message or "Grant expired")
            raise AuthorizationFailed(message or f"Relayer returned {response.status_code}")

        if error or response.status_code >= 400:
            if isinstance(error, dict):
                code, message = error.get("code", ""), error.get("message", "")
            else:
                code, message = "", str(error or "")
            cls = _ERRORS_BY_CODE.get(code, NetworkFailure)
            raise cls(message or f"Relayer error {response.status_code} {code}".strip())

        return body

    # ═══════════════════════════════════════════════════════════════════════
    # ENCRYPTION
    # ═══════════════════════════════════════════════════════════════════════

    def encrypt_batch(self, contract_address: str, submitter: str,
                      values: Sequence[int]) -> CiphertextBundle:
        values = check_uint64_values(values)
        result = self._call("/v1/input-proof", {
            "contractAddress": normalize_address(contract_address),
            "userAddress": normalize_address(submitter),
            "values": [str(v) for v in values],
        })
        try:
            bundle = CiphertextBundle.from_dict(result)
        except ValueError as e:
            raise NetworkFailure(f"Malformed input-proof response: {e}")
        if len(bundle) != len(values):
            raise LengthMismatch(
                f"Relayer returned {len(bundle)} handles for {len(values)} values"
            )
        log.debug(f"Relayer encrypted {len(values)} values for {contract_address}")
        return bundle

    # ═══════════════════════════════════════════════════════════════════════
    # USER DECRYPTION
    # ═══════════════════════════════════════════════════════════════════════

    def decrypt_batch(self, pairs: Sequence[HandleContractPair],
                      grant: DecryptionGrant) -> Dict[str, int]:
        payload = {
            "handleContractPairs": [p.to_dict() for p in pairs],
            "requestValidity": {
                "startTimestamp": str(grant.start_timestamp),
                "durationDays": str(grant.duration_days),
            },
            "contractAddresses": list(grant.contract_addresses),
            "userAddress": grant.user_address,
            "signature": _strip_0x(grant.signature),
            "publicKey": _strip_0x(grant.public_key),
            "contractsChainId": str(grant.chain_id),
        }
        result = self._call("/v1/user-decrypt", payload)

        values = result.get("values")
        if not isinstance(values, dict):
            raise NetworkFailure("Malformed user-decrypt response")
        try:
            return {encode_handle(h): int(v) for h, v in values.items()}
        except ValueError as e:
            raise NetworkFailure(f"Malformed user-decrypt value: {e}")
