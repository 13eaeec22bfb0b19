"""
Service Facade Tests
"""

from unittest.mock import Mock

import pytest

from distributor_sdk.codec import ZERO_HANDLE
from distributor_sdk.config import Config, LOCAL_DEV_KEYS
from distributor_sdk.errors import ERROR_MARKER, NetworkFailure
from distributor_sdk.service import DistributorService
from distributor_sdk.settlement import PendingTransaction


def peek(deployment, address):
    return deployment.backend.peek(deployment.ledger.confidential_balance_of(address))


class TestQueries:
    """Tests for read-only queries."""

    def test_own_balance_handle(self, service, deployment, deployer):
        assert service.own_balance_handle() == ZERO_HANDLE
        deployment.ledger.mint(deployer.address, deployer.address, 5)
        assert service.own_balance_handle() == deployment.ledger.confidential_balance_of(
            deployer.address)

    def test_balance_handle(self, service, deployment):
        handle = service.balance_handle(deployment.distributor_address.lower())
        assert handle == deployment.ledger.confidential_balance_of(deployment.distributor_address)

    def test_decrypt_own_balance(self, service):
        assert service.decrypt_balance() == "0"

    def test_decrypt_other_balance_is_error(self, service, alice):
        """Decrypting someone else's balance shows the error marker."""
        assert service.decrypt_balance(alice.address) == ERROR_MARKER

    def test_lookup_failure_is_error(self, service):
        service.settlement = Mock(confidential_balance_of=Mock(
            side_effect=NetworkFailure("down")))
        assert service.decrypt_balance() == ERROR_MARKER

    def test_status(self, service, deployment):
        status = service.status()
        assert status["token_address"] == deployment.token_address
        assert status["distributor_address"] == deployment.distributor_address


class TestDistribute:
    """Tests for batch distribution through the facade."""

    def test_distribute(self, service, deployment, alice, bob, clock):
        seen = []
        result = service.distribute([(alice.address, "0.0001"), (bob.address, "0.0002")],
                                    on_status=seen.append)
        assert result.status == "confirmed"
        assert result.message == "Distribution confirmed"
        assert [s.status for s in seen] == ["pending"]
        assert seen[0].message == f"Waiting for confirmation: {result.tx_hash}"
        assert peek(deployment, alice.address) == 100
        assert peek(deployment, bob.address) == 200
        assert peek(deployment, deployment.distributor_address) == 999_700

        alice_view = DistributorService.local(alice, deployment, clock=clock)
        assert alice_view.decrypt_balance() == "0.0001"

    def test_dict_rows(self, service, deployment, alice):
        result = service.distribute([{"address": alice.address, "amount": "1"}])
        assert result.ok
        assert peek(deployment, alice.address) == 1_000_000

    def test_invalid_amount_row(self, service, alice, bob):
        result = service.distribute([(alice.address, "1"), (bob.address, "x")])
        assert result.status == "ParseError"
        assert result.message == "Error: invalid amount in row 2"

    def test_zero_amount_row(self, service, alice):
        result = service.distribute([(alice.address, "0")])
        assert result.status == "OutOfRange"
        assert result.message == "Error: invalid amount in row 1"

    def test_invalid_address_row(self, service):
        result = service.distribute([("0xnope", "1")])
        assert result.status == "InvalidAddress"
        assert result.message == "Error: invalid address in row 1"

    def test_no_rows(self, service):
        assert service.distribute([]).status == "LengthMismatch"

    def test_insufficient_balance(self, service, deployment, alice):
        """2 cETH = 2,000,000 raw > 1,000,000 funded: nothing moves."""
        seen = []
        result = service.distribute([(alice.address, "2")], on_status=seen.append)
        assert result.status == "InsufficientBalance"
        assert result.is_error
        assert seen == []
        assert deployment.ledger.confidential_balance_of(alice.address) == ZERO_HANDLE


class TestFaucet:
    """Tests for faucet minting."""

    def test_faucet(self, service):
        result = service.request_faucet("1.5")
        assert result.ok
        assert result.message == "Faucet mint confirmed: 1.5 cETH"
        assert service.decrypt_balance() == "1.5"

    def test_faucet_zero(self, service):
        result = service.request_faucet("0")
        assert result.status == "OutOfRange"
        assert result.message == (
            "Error: amount must be greater than 0 and at most 18446744073709.551615")

    def test_faucet_garbage(self, service):
        assert service.request_faucet("abc").status == "ParseError"

    def test_ambiguous_network_failure(self, service):
        """A lost receipt is reported distinctly: re-query before retrying."""
        def lost(tx_hash, timeout):
            raise NetworkFailure("no receipt", ambiguous=True)

        service.settlement = Mock(mint=Mock(return_value=PendingTransaction(
            tx_hash="0x01", waiter=lost)))
        seen = []
        result = service.request_faucet("1", on_status=seen.append)
        assert result.status == "NetworkFailure"
        assert result.tx_hash == "0x01"
        assert "re-query" in result.message
        assert [s.status for s in seen] == ["pending"]

    def test_definite_network_failure(self, service):
        service.settlement = Mock(mint=Mock(side_effect=NetworkFailure("down")))
        result = service.request_faucet("1")
        assert result.status == "NetworkFailure"
        assert "re-query" not in result.message


class TestFromConfig:
    """Tests for construction from configuration."""

    def test_local_by_default(self):
        service = DistributorService.from_config(Config())
        from eth_account import Account
        assert service.address == Account.from_key(LOCAL_DEV_KEYS[0]).address
        assert service.network == "local"

    def test_remote_requires_relayer(self):
        config = Config(token_address="0x" + "12" * 20, distributor_address="0x" + "34" * 20,
                        private_key=LOCAL_DEV_KEYS[0])
        with pytest.raises(ValueError):
            DistributorService.from_config(config)

    def test_remote_requires_key(self):
        config = Config(token_address="0x" + "12" * 20, distributor_address="0x" + "34" * 20,
                        relayer_url="https://relayer.test")
        with pytest.raises(ValueError):
            DistributorService.from_config(config)
