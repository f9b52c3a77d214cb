"""
Settlement callback dispatcher.

Notifies a registered consumer after a report is finalized. The consumer
runs with exactly its registered gas stipend, inside a ledger checkpoint;
whatever it raises is captured and reported, never re-raised into the
lifecycle.
"""
import logging
import msgpack
from typing import Optional, Protocol, runtime_checkable

from .core import GasMetering
from .crypto import function_selector
from .errors import GasProvisioningFailure
from .ledger import Ledger
from .utils.encoding import to_uint256, from_uint256

logger = logging.getLogger(__name__)

SETTLEMENT_CALLBACK_SIGNATURE = "onSettle(uint256,uint256,uint256,address,address)"
DEFAULT_SETTLEMENT_SELECTOR = function_selector(SETTLEMENT_CALLBACK_SIGNATURE)

CALLBACK_GAS_RESERVE = 100_000


@runtime_checkable
class Notifiable(Protocol):
    def on_settlement(self, calldata: bytes, gas: GasMetering) -> None:
        ...


class CallbackResult:
    __slots__ = ('success', 'gas_used', 'error')

    def __init__(self, success: bool, gas_used: int = 0, error: Optional[str] = None):
        self.success = success
        self.gas_used = gas_used
        self.error = error

    def __repr__(self) -> str:
        return f"CallbackResult(success={self.success}, gas_used={self.gas_used}, error={self.error!r})"


def encode_settlement_call(selector: bytes, report_id: int, price: int, tick: int,
                           asset1: bytes, asset2: bytes) -> bytes:
    """Selector followed by the msgpack-encoded notification."""
    words = [to_uint256(report_id), to_uint256(price), to_uint256(tick)]
    return selector + msgpack.packb(words + [asset1, asset2], use_bin_type=True)


def decode_settlement_call(calldata: bytes) -> tuple[bytes, dict]:
    if len(calldata) < 4:
        raise ValueError("calldata shorter than a selector")
    report_id, price, tick, asset1, asset2 = msgpack.unpackb(calldata[4:], raw=False)
    return calldata[:4], {
        'report_id': from_uint256(report_id),
        'price': from_uint256(price),
        'tick': from_uint256(tick),
        'asset1': asset1,
        'asset2': asset2,
    }


def required_headroom(gas_limit: int, reserve: int = CALLBACK_GAS_RESERVE) -> int:
    """Gas the caller must still hold so the callee gets its full stipend.

    Only 63/64 of the remaining budget can be forwarded to a sub-call.
    """
    return gas_limit * 64 // 63 + reserve


def dispatch_settlement_callback(ledger: Ledger, gas: GasMetering, target: bytes,
                                 selector: bytes, gas_limit: int, report_id: int,
                                 price: int, tick: int, asset1: bytes, asset2: bytes,
                                 reserve: int = CALLBACK_GAS_RESERVE) -> CallbackResult:
    needed = required_headroom(gas_limit, reserve)
    if gas.remaining() < needed:
        raise GasProvisioningFailure(
            "insufficient gas for callback",
            remaining=gas.remaining(),
            required=needed,
        )

    contract = ledger.code_at(target)
    if contract is None:
        # plain account, nothing to execute
        return CallbackResult(True)

    if not isinstance(contract, Notifiable):
        return CallbackResult(False, error="target does not accept settlement calls")

    calldata = encode_settlement_call(selector, report_id, price, tick, asset1, asset2)
    stipend = GasMetering(gas_limit)
    try:
        with ledger.isolated():
            contract.on_settlement(calldata, stipend)
        result = CallbackResult(True, gas_used=stipend.gas_used)
    except Exception as e:
        logger.warning(f"Settlement callback for report {report_id} to {target.hex()[:8]} failed: {e}")
        result = CallbackResult(False, gas_used=min(stipend.gas_used, gas_limit), error=str(e))

    gas.charge(result.gas_used, "settlement_callback")
    return result
