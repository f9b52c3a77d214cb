"""
Shared fixtures: a funded ledger, a deployed oracle and a harness that
drives reports through their lifecycle.
"""
import pytest

from open_oracle.core import Call
from open_oracle.ledger import Clock, Ledger, NATIVE_ASSET
from open_oracle.oracle import OpenOracle, ORACLE_ADDRESS
from open_oracle.report_state import CreateReportParams

START_TIME = 1_700_000_000
START_BLOCK = 100

ASSET1 = b'\x00' * 19 + b'\xa1'
ASSET2 = b'\x00' * 19 + b'\xa2'

OWNER = b'\x0a' * 20
FEE_RECIPIENT = b'\x0f' * 20
CREATOR = b'\xc0' * 20
ALICE = b'\xa0' * 20
BOB = b'\xb0' * 20
CAROL = b'\xca' * 20
SETTLER = b'\x5e' * 20

BOND = 10**16
FUNDING = 10**24


class OracleHarness:
    """Scenario A defaults plus shortcuts for the common lifecycle steps."""

    asset1 = ASSET1
    asset2 = ASSET2
    owner = OWNER
    fee_recipient = FEE_RECIPIENT
    creator = CREATOR
    alice = ALICE
    bob = BOB
    carol = CAROL
    settler = SETTLER
    bond = BOND

    def __init__(self, ledger: Ledger, oracle: OpenOracle):
        self.ledger = ledger
        self.oracle = oracle
        self.clock = ledger.clock
        for account in (CREATOR, ALICE, BOB, CAROL, SETTLER):
            self.fund(account)

    def fund(self, account: bytes):
        self.ledger.mint(account, FUNDING)
        for asset in (ASSET1, ASSET2):
            self.ledger.mint(account, FUNDING, asset)
            self.ledger.approve(account, ORACLE_ADDRESS, asset, FUNDING)

    def params(self, **overrides) -> CreateReportParams:
        fields = dict(
            asset1=ASSET1,
            asset2=ASSET2,
            exact_asset1_amount=10**18,
            fee_rate=3000,
            escalation_multiplier=110,
            settlement_duration=300,
            escalation_halt=10 * 10**18,
            dispute_delay=5,
            protocol_fee_rate=1000,
            settler_reward=10**15,
            track_disputes=True,
        )
        fields.update(overrides)
        return CreateReportParams(**fields)

    def create(self, creator: bytes = CREATOR, bond: int = BOND, **overrides) -> int:
        return self.oracle.create_report_instance(Call(creator, value=bond), self.params(**overrides))

    def integrity_hash(self, report_id: int) -> bytes:
        return self.oracle.registry.get_extra(report_id).integrity_hash

    def submit(self, report_id: int, reporter: bytes = ALICE, amount1: int = 10**18,
               amount2: int = 2000 * 10**18, **kwargs):
        self.oracle.submit_initial_report(
            Call(reporter), report_id, amount1, amount2, self.integrity_hash(report_id), **kwargs
        )

    def dispute(self, report_id: int, new_amount1: int, new_amount2: int, payer: bytes = BOB,
                asset: bytes = ASSET1, expected_amount2: int = None, **kwargs):
        if expected_amount2 is None:
            expected_amount2 = self.oracle.registry.get_status(report_id).current_amount2
        self.oracle.dispute_and_swap(
            Call(payer), report_id, asset, new_amount1, new_amount2,
            expected_amount2, self.integrity_hash(report_id), **kwargs
        )

    def settle(self, report_id: int, settler: bytes = SETTLER, **call_kwargs):
        return self.oracle.settle(Call(settler, **call_kwargs), report_id)

    def advance(self, seconds: int = 0, blocks: int = 0):
        self.clock.advance(seconds=seconds, blocks=blocks)

    def balance(self, account: bytes, asset: bytes = NATIVE_ASSET) -> int:
        return self.ledger.balance_of(account, asset)

    def escrow(self, asset: bytes = NATIVE_ASSET) -> int:
        return self.oracle.contract_balance(asset)


@pytest.fixture
def ledger():
    return Ledger(Clock(timestamp=START_TIME, block_number=START_BLOCK))


@pytest.fixture
def oracle(ledger):
    return OpenOracle(ledger, owner=OWNER, fee_recipient=FEE_RECIPIENT)


@pytest.fixture
def harness(ledger, oracle):
    return OracleHarness(ledger, oracle)
