"""
Confidential Distributor Test Fixtures
"""

import pytest
from eth_account import Account

from distributor_sdk.config import LOCAL_DEV_KEYS
from distributor_sdk.local import bootstrap_local
from distributor_sdk.service import DistributorService


class FakeClock:
    """Controllable time source (unix seconds)."""

    def __init__(self, now: float = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def deployer():
    """Deploying account (minter, batch submitter)."""
    return Account.from_key(LOCAL_DEV_KEYS[0])


@pytest.fixture
def alice():
    return Account.from_key(LOCAL_DEV_KEYS[1])


@pytest.fixture
def bob():
    return Account.from_key(LOCAL_DEV_KEYS[2])


@pytest.fixture
def carol():
    return Account.from_key(LOCAL_DEV_KEYS[3])


@pytest.fixture
def deployment(deployer, clock):
    """Token + distributor, distributor funded with 1,000,000."""
    return bootstrap_local(deployer.address, clock=clock)


@pytest.fixture
def backend(deployment):
    return deployment.backend


@pytest.fixture
def ledger(deployment):
    return deployment.ledger


@pytest.fixture
def distributor(deployment):
    return deployment.distributor


@pytest.fixture
def service(deployer, deployment, clock) -> DistributorService:
    return DistributorService.local(deployer, deployment, clock=clock)
