"""
Tests for the signed transaction envelope and its processing.
"""
import pytest

from open_oracle.core import (
    Transaction,
    CREATE_REPORT,
    SUBMIT_INITIAL_REPORT,
    DISPUTE_AND_SWAP,
    SETTLE,
    WITHDRAW_PROTOCOL_FEES,
)
from open_oracle.crypto import generate_key_pair, public_key_to_address, serialize_public_key, verify_signature
from open_oracle.errors import ConfigValidation, StateConflict, ValidationError
from open_oracle.report_state import ReportState

E18 = 10**18


class Signer:
    def __init__(self):
        self.priv, pub = generate_key_pair()
        self.pem = serialize_public_key(pub)
        self.address = public_key_to_address(self.pem)
        self.nonce = 0

    def tx(self, tx_type, data, value=0, chain_id=1, nonce=None):
        tx = Transaction(
            sender_public_key=self.pem,
            tx_type=tx_type,
            data=data,
            nonce=self.nonce if nonce is None else nonce,
            value=value,
            chain_id=chain_id,
        )
        tx.sign(self.priv)
        if nonce is None:
            self.nonce += 1
        return tx


@pytest.fixture
def signers(harness):
    creator, reporter, disputer = Signer(), Signer(), Signer()
    for signer in (creator, reporter, disputer):
        harness.fund(signer.address)
    return creator, reporter, disputer


def test_signature_verification():
    signer = Signer()
    tx = signer.tx(SETTLE, {'report_id': 1})
    assert tx.verify_signature()
    is_valid, error = tx.validate_basic()
    assert is_valid, error

    tx.data['report_id'] = 2
    assert not tx.verify_signature()
    is_valid, error = tx.validate_basic()
    assert not is_valid
    assert "signature" in error.lower()


def test_addresses_and_unparseable_keys():
    signer = Signer()
    assert len(signer.address) == 20
    assert public_key_to_address(signer.pem) == signer.address
    assert Signer().address != signer.address
    assert not verify_signature("not a pem", b'\x00' * 64, b'payload')


def test_signing_covers_large_amounts():
    signer = Signer()
    tx = signer.tx(SUBMIT_INITIAL_REPORT, {
        'report_id': 1, 'amount1': 2**100, 'amount2': 2**90, 'integrity_hash': '00' * 32,
    })
    assert tx.verify_signature()
    restored = Transaction.from_dict(tx.to_dict())
    assert restored.verify_signature()
    assert restored.id == tx.id


def test_basic_validation_of_payloads():
    signer = Signer()
    is_valid, error = signer.tx(SETTLE, {}).validate_basic()
    assert not is_valid and "report_id" in error
    is_valid, error = signer.tx("TRANSFER", {}).validate_basic()
    assert not is_valid and "Unknown" in error
    is_valid, error = signer.tx(WITHDRAW_PROTOCOL_FEES, {}).validate_basic()
    assert not is_valid and "asset" in error


def test_full_lifecycle_through_transactions(harness, signers):
    creator, reporter, disputer = signers
    oracle = harness.oracle
    params = harness.params().to_dict()

    report_id = oracle.process_transaction(creator.tx(CREATE_REPORT, params, value=harness.bond))
    assert report_id == 1
    assert harness.escrow() == harness.bond
    integrity_hash = harness.integrity_hash(report_id).hex()

    oracle.process_transaction(reporter.tx(SUBMIT_INITIAL_REPORT, {
        'report_id': report_id,
        'amount1': E18,
        'amount2': 2000 * E18,
        'integrity_hash': integrity_hash,
    }))
    assert oracle.registry.get_status(report_id).current_reporter == reporter.address

    harness.advance(6)
    oracle.process_transaction(disputer.tx(DISPUTE_AND_SWAP, {
        'report_id': report_id,
        'asset_to_swap': harness.asset1.hex(),
        'new_amount1': 11 * E18 // 10,
        'new_amount2': 2100 * E18,
        'expected_amount2': 2000 * E18,
        'integrity_hash': integrity_hash,
        'disputer': harness.carol.hex(),
    }))
    assert oracle.registry.get_status(report_id).current_reporter == harness.carol

    harness.advance(300)
    price, _ = oracle.process_transaction(disputer.tx(SETTLE, {'report_id': report_id}))
    assert price == (11 * E18 // 10) * 10**18 // (2100 * E18)
    assert oracle.get_report(report_id).state == ReportState.DISTRIBUTED
    assert harness.ledger.get_nonce(disputer.address) == 2


def test_failed_operation_still_consumes_nonce(harness, signers):
    _, reporter, _ = signers
    report_id = harness.create()

    with pytest.raises(StateConflict):
        harness.oracle.process_transaction(reporter.tx(SETTLE, {'report_id': report_id}))

    assert harness.ledger.get_nonce(reporter.address) == 1
    assert harness.oracle.get_report(report_id).state == ReportState.PENDING


def test_wrong_nonce_and_chain_rejected(harness, signers):
    _, reporter, _ = signers
    report_id = harness.create()

    with pytest.raises(ValidationError, match="nonce"):
        harness.oracle.process_transaction(reporter.tx(SETTLE, {'report_id': report_id}, nonce=3))
    with pytest.raises(ValidationError, match="chain"):
        harness.oracle.process_transaction(reporter.tx(SETTLE, {'report_id': report_id}, chain_id=2, nonce=0))
    assert harness.ledger.get_nonce(reporter.address) == 0


def test_native_value_only_accepted_on_create(harness, signers):
    _, reporter, _ = signers
    report_id = harness.create()
    tx = reporter.tx(SUBMIT_INITIAL_REPORT, {
        'report_id': report_id,
        'amount1': E18,
        'amount2': 2000 * E18,
        'integrity_hash': harness.integrity_hash(report_id).hex(),
    }, value=10)

    with pytest.raises(ValidationError):
        harness.oracle.process_transaction(tx)

    assert harness.escrow(harness.asset1) == 0
    assert harness.ledger.get_nonce(reporter.address) == 1


@pytest.mark.parametrize("tx_type, payload", [
    (SUBMIT_INITIAL_REPORT, {'report_id': 1, 'amount2': 2000 * E18, 'integrity_hash': '00' * 32}),
    (SUBMIT_INITIAL_REPORT, {'report_id': 1, 'amount1': E18, 'amount2': 2000 * E18, 'integrity_hash': 'zz'}),
    (DISPUTE_AND_SWAP, {'report_id': 1, 'asset_to_swap': 'a1', 'new_amount1': 'lots',
                        'new_amount2': 1, 'expected_amount2': 1, 'integrity_hash': '00' * 32}),
    (WITHDRAW_PROTOCOL_FEES, {'asset': 7}),
])
def test_malformed_payload_rejected_after_nonce(harness, signers, tx_type, payload):
    _, reporter, _ = signers
    harness.create()

    with pytest.raises(ConfigValidation, match="malformed transaction data"):
        harness.oracle.process_transaction(reporter.tx(tx_type, payload))

    assert harness.ledger.get_nonce(reporter.address) == 1
    assert harness.oracle.get_report(1).state == ReportState.PENDING


def test_unknown_create_field_rejected(harness, signers):
    creator, _, _ = signers
    params = harness.params().to_dict()
    params['surprise'] = 1

    with pytest.raises(ConfigValidation):
        harness.oracle.process_transaction(creator.tx(CREATE_REPORT, params, value=harness.bond))

    assert harness.oracle.next_report_id == 1
    assert harness.ledger.get_nonce(creator.address) == 1
