#!/usr/bin/env python3
# Copyright (c) 2025 The Confidential Distributor developers
# Distributed under the MIT software license

"""
distributor-cli - Confidential batch distribution from the command line

Commands:
  address                               Print distributor and token addresses
  batch --recipients a,b --amounts 1,2  Encrypt raw amounts and distribute
  mint --to ADDR --amount N             Mint raw cETH units
  balance --address ADDR                Print encrypted balance handle
  decrypt --address ADDR                Decrypt a balance you own
  demo                                  Run the 100/200 scenario in-process
  serve --port N                        Start the HTTP API

Configuration comes from the environment / .env (see Config.from_env).
Without TOKEN_ADDRESS and DISTRIBUTOR_ADDRESS every command runs against a
fresh in-process deployment.
"""

import argparse
import logging
import sys
from typing import List, Optional

from eth_account import Account

from .amounts import check_uint64_values, format_amount
from .config import LOCAL_DEV_KEYS, Config
from .errors import ERROR_MARKER, AmountParseError, DistributorError, LengthMismatch
from .local import bootstrap_local
from .service import DistributorService

log = logging.getLogger(__name__)


def _split(value: str) -> List[str]:
    return [s.strip() for s in value.split(",") if s.strip()]


def _raw_amounts(values: List[str]) -> List[int]:
    try:
        amounts = [int(v) for v in values]
    except ValueError:
        raise AmountParseError("Amounts must be integers (raw uint64 units)")
    return check_uint64_values(amounts)


def build_service(args) -> DistributorService:
    config = Config.from_env(env_file=args.env_file)
    return DistributorService.from_config(config)


# ============ COMMANDS ============

def cmd_address(args, service: DistributorService) -> int:
    """Print contract addresses."""
    print(f"Distributor: {service.distributor_address}")
    print(f"ConfidentialETH: {service.token_address}")
    return 0


def cmd_batch(args, service: DistributorService) -> int:
    """Encrypt raw amounts and distribute them in one transaction."""
    recipients = _split(args.recipients)
    amounts = _split(args.amounts)
    if len(recipients) != len(amounts):
        raise LengthMismatch("recipients/amounts length mismatch")

    bundle = service.encryption.encrypt_batch(
        service.distributor_address, service.address, _raw_amounts(amounts)
    )
    tx = service.settlement.batch_distribute_encrypted(recipients, bundle)
    print(f"Wait for tx:{tx.tx_hash}...")
    tx.wait(service.receipt_timeout)
    print("Batch distribution done.")

    for recipient in recipients:
        print(f"Encrypted balance handle for {recipient}: "
              f"{service.balance_handle(recipient)}")
    return 0


def cmd_mint(args, service: DistributorService) -> int:
    """Mint raw units to an address."""
    amount = _raw_amounts([args.amount])[0]
    tx = service.settlement.mint(args.to, amount)
    print(f"Wait for tx:{tx.tx_hash}...")
    tx.wait(service.receipt_timeout)
    print(f"Minted {format_amount(amount, service.decimals)} cETH to {args.to}")
    return 0


def cmd_balance(args, service: DistributorService) -> int:
    """Print the encrypted balance handle."""
    address = args.address or service.address
    print(f"Encrypted balance handle for {address}: {service.balance_handle(address)}")
    return 0


def cmd_decrypt(args, service: DistributorService) -> int:
    """Decrypt a balance owned by the configured account."""
    address = args.address or service.address
    value = service.decrypt_balance(address)
    print(f"Balance of {address}: {value}")
    return 1 if value == ERROR_MARKER else 0


def cmd_demo(args) -> int:
    """
    Mint 1,000,000 to the distributor, distribute {100, 200} to Alice and Bob,
    then decrypt both balances.
    """
    deployer = Account.from_key(LOCAL_DEV_KEYS[0])
    alice = Account.from_key(LOCAL_DEV_KEYS[1])
    bob = Account.from_key(LOCAL_DEV_KEYS[2])

    deployment = bootstrap_local(deployer.address)
    service = DistributorService.local(deployer, deployment)

    print(f"Distributor: {deployment.distributor_address}")
    print(f"ConfidentialETH: {deployment.token_address}")

    bundle = deployment.backend.encrypt_batch(
        deployment.distributor_address, deployer.address, [100, 200]
    )
    tx = service.settlement.batch_distribute_encrypted([alice.address, bob.address], bundle)
    tx.wait()
    print(f"Batch distribution confirmed: {tx.tx_hash}")

    remaining = deployment.backend.peek(
        deployment.ledger.confidential_balance_of(deployment.distributor_address)
    )
    print(f"Distributor balance (mock inspection): {remaining}")

    results = {"Distributor": (remaining, 999_700)}
    for name, account, expected in (("Alice", alice, 100), ("Bob", bob, 200)):
        handle = deployment.ledger.confidential_balance_of(account.address)
        value = service.authorization.decrypt(account, account.address, handle,
                                              deployment.token_address)
        print(f"{name} decrypts: {value}")
        results[name] = (value, expected)

    mismatched = [name for name, (got, want) in results.items() if got != want]
    if mismatched:
        print(f"Unexpected balances: {', '.join(mismatched)}", file=sys.stderr)
        return 1
    return 0


def cmd_serve(args, service: DistributorService) -> int:
    """Start the HTTP API."""
    from .server import create_app

    port = args.port or Config.from_env(env_file=args.env_file).http_port
    log.info(f"Starting Distributor Server on port {port}")
    create_app(service).run(host="0.0.0.0", port=port, debug=False)
    return 0


# ============ MAIN ============

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Confidential batch distributor")
    parser.add_argument("--env-file", default=".env", help="Env file (default: .env)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("address", help="Print distributor and token addresses")

    batch_parser = subparsers.add_parser("batch", help="Distribute encrypted amounts")
    batch_parser.add_argument("--recipients", required=True, help="Comma-separated addresses")
    batch_parser.add_argument("--amounts", required=True,
                              help="Comma-separated uint64 amounts (plaintext; will be encrypted)")

    mint_parser = subparsers.add_parser("mint", help="Mint cETH (raw units)")
    mint_parser.add_argument("--to", required=True, help="Recipient address")
    mint_parser.add_argument("--amount", required=True, help="Raw uint64 amount")

    balance_parser = subparsers.add_parser("balance", help="Print encrypted balance handle")
    balance_parser.add_argument("--address", help="Address (default: own account)")

    decrypt_parser = subparsers.add_parser("decrypt", help="Decrypt a balance you own")
    decrypt_parser.add_argument("--address", help="Address (default: own account)")

    subparsers.add_parser("demo", help="Run the in-process demo scenario")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--port", type=int, default=0, help="HTTP port (default: HTTP_PORT)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s [%(levelname)s] %(message)s')
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command == "demo":
            return cmd_demo(args)

        service = build_service(args)
        if args.command == "address":
            return cmd_address(args, service)
        elif args.command == "batch":
            return cmd_batch(args, service)
        elif args.command == "mint":
            return cmd_mint(args, service)
        elif args.command == "balance":
            return cmd_balance(args, service)
        elif args.command == "decrypt":
            return cmd_decrypt(args, service)
        elif args.command == "serve":
            return cmd_serve(args, service)
    except DistributorError as e:
        print(f"Error ({e.kind}): {e.message}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
