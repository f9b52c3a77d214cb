"""
Call context, signed transaction envelope and gas metering.
"""
import time
import msgpack
from typing import Optional
from .crypto import (
    generate_hash,
    public_key_to_address,
    sign,
    verify_signature,
)
from .errors import GasProvisioningFailure
from .utils.encoding import stringify_ints

CREATE_REPORT          = "CREATE_REPORT"
SUBMIT_INITIAL_REPORT  = "SUBMIT_INITIAL_REPORT"
DISPUTE_AND_SWAP       = "DISPUTE_AND_SWAP"
SETTLE                 = "SETTLE"
WITHDRAW_PROTOCOL_FEES = "WITHDRAW_PROTOCOL_FEES"
WITHDRAW_NATIVE_FEES   = "WITHDRAW_NATIVE_FEES"
UPDATE_FEE_RECIPIENT   = "UPDATE_FEE_RECIPIENT"

TX_TYPES = (
    CREATE_REPORT,
    SUBMIT_INITIAL_REPORT,
    DISPUTE_AND_SWAP,
    SETTLE,
    WITHDRAW_PROTOCOL_FEES,
    WITHDRAW_NATIVE_FEES,
    UPDATE_FEE_RECIPIENT,
)

DEFAULT_GAS_LIMIT = 10_000_000


class GasMetering:
    """Simple gas metering for entry point execution."""

    BASE_CALL_COST = 21000
    STORAGE_READ = 2000
    STORAGE_WRITE = 5000
    TRANSFER = 9000
    COMPUTATION = 100

    OP_COSTS = {
        CREATE_REPORT: 60000,
        SUBMIT_INITIAL_REPORT: 40000,
        DISPUTE_AND_SWAP: 50000,
        SETTLE: 30000,
        WITHDRAW_PROTOCOL_FEES: 20000,
        WITHDRAW_NATIVE_FEES: 20000,
        UPDATE_FEE_RECIPIENT: 10000,
    }

    def __init__(self, gas_limit: int):
        self.gas_limit = gas_limit
        self.gas_used = 0

    def charge(self, amount: int, operation: str = ""):
        """Charge gas and check limit."""
        self.gas_used += amount
        if self.gas_used > self.gas_limit:
            raise GasProvisioningFailure(
                "out of gas",
                used=self.gas_used,
                limit=self.gas_limit,
                operation=operation,
            )

    def remaining(self) -> int:
        """Get remaining gas."""
        return max(0, self.gas_limit - self.gas_used)


class Call:
    """Execution context of one entry point invocation.

    `value` is native currency attached to the call and `gas` the budget
    the caller supplied.
    """
    __slots__ = ('sender', 'value', 'gas')

    def __init__(self, sender: bytes, value: int = 0, gas: int = DEFAULT_GAS_LIMIT):
        if value < 0:
            raise ValueError("Call value cannot be negative")
        self.sender = sender
        self.value = value
        self.gas = gas

    def __repr__(self) -> str:
        return f"Call(sender={self.sender.hex()[:8]}, value={self.value}, gas={self.gas})"


class Transaction:
    def __init__(self,
                 sender_public_key: str,
                 tx_type: str,
                 data: dict,
                 nonce: int,
                 value: int = 0,
                 signature: Optional[bytes] = None,
                 timestamp: Optional[float] = None,
                 chain_id: Optional[int] = 1,
                 gas_limit: Optional[int] = DEFAULT_GAS_LIMIT):
        self.sender_public_key = sender_public_key
        self.tx_type = tx_type
        self.data = data
        self.nonce = nonce
        self.value = value
        self.timestamp = timestamp or time.time()
        self.signature = signature
        self.chain_id = chain_id
        self.gas_limit = gas_limit

    @classmethod
    def from_dict(cls, data: dict):
        """Creates a Transaction object from a dictionary."""
        return cls(
            sender_public_key=data["sender_public_key"],
            tx_type=data["tx_type"],
            data=data["data"],
            nonce=data["nonce"],
            value=data.get("value", 0),
            signature=bytes.fromhex(data["signature"]) if data.get("signature") else None,
            timestamp=data.get("timestamp"),
            chain_id=data.get("chain_id"),
            gas_limit=data.get("gas_limit"),
        )

    def to_dict(self, include_signature=True):
        data = {
            "sender_public_key": self.sender_public_key,
            "tx_type": self.tx_type,
            "data": self.data,
            "nonce": self.nonce,
            "value": self.value,
            "timestamp": self.timestamp,
            "chain_id": self.chain_id,
            "gas_limit": self.gas_limit,
        }
        if include_signature and self.signature:
            data["signature"] = self.signature.hex()
        return data

    def get_signing_data(self) -> bytes:
        """Returns the canonical byte representation for signing."""
        return msgpack.packb(stringify_ints(self.to_dict(include_signature=False)), use_bin_type=True)

    def sign(self, private_key):
        """Signs the transaction."""
        self.signature = sign(private_key, self.get_signing_data())

    def verify_signature(self):
        """Verifies the transaction's signature."""
        if not self.signature:
            return False
        return verify_signature(
            self.sender_public_key,
            self.signature,
            self.get_signing_data()
        )

    @property
    def sender_address(self) -> bytes:
        return public_key_to_address(self.sender_public_key)

    @property
    def id(self) -> bytes:
        """The unique hash identifier of the transaction."""
        return generate_hash(self.get_signing_data())

    def to_call(self) -> Call:
        return Call(self.sender_address, value=self.value, gas=self.gas_limit or DEFAULT_GAS_LIMIT)

    def validate_basic(self) -> tuple[bool, str]:
        """
        Performs basic validation checks on the transaction.
        Returns (is_valid, error_message)
        """
        if not self.verify_signature():
            return False, "Invalid signature"

        if self.value < 0:
            return False, "Negative value"

        if self.tx_type not in TX_TYPES:
            return False, f"Unknown transaction type: {self.tx_type}"

        if not isinstance(self.data, dict):
            return False, "Transaction data must be a dict"

        if self.tx_type in (SUBMIT_INITIAL_REPORT, DISPUTE_AND_SWAP, SETTLE):
            if not isinstance(self.data.get('report_id'), int):
                return False, f"{self.tx_type} requires integer 'report_id'"

        if self.tx_type == WITHDRAW_PROTOCOL_FEES and 'asset' not in self.data:
            return False, "WITHDRAW_PROTOCOL_FEES requires 'asset'"

        if self.tx_type == UPDATE_FEE_RECIPIENT and 'recipient' not in self.data:
            return False, "UPDATE_FEE_RECIPIENT requires 'recipient'"

        return True, ""
