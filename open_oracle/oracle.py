"""
Report lifecycle engine.

A first reporter bonds two asset amounts that define an exchange rate.
Anyone may dispute that rate during the open window by swapping the
reporter out with an escalated stake and a price outside the fee band.
Once the settlement duration passes without a dispute, anyone may settle:
the price is frozen if the call lands inside the settlement window, and
escrow is released to the last reporter either way.

Every state-mutating entry point:
- holds the global guard (re-entry fails fast)
- charges gas against the caller's budget
- rolls back whatever it touched if anything raises
"""

import logging
import threading
import time
import msgpack
from contextlib import contextmanager
from typing import Optional

from .config import Config
from .core import (
    Call,
    GasMetering,
    Transaction,
    CREATE_REPORT,
    SUBMIT_INITIAL_REPORT,
    DISPUTE_AND_SWAP,
    SETTLE,
    WITHDRAW_PROTOCOL_FEES,
    WITHDRAW_NATIVE_FEES,
    UPDATE_FEE_RECIPIENT,
)
from .crypto import generate_hash
from .custodian import FundCustodian
from .dispatcher import CALLBACK_GAS_RESERVE, dispatch_settlement_callback
from .errors import (
    ValidationError,
    ConfigValidation,
    InsufficientBond,
    StateConflict,
    TimingViolation,
    IntegrityMismatch,
    BoundsViolation,
)
from .events import EventKind, EventLog
from .monitoring import Monitor
from .ledger import Ledger
from .registry import ReportRegistry
from .treasury import FeeTreasury
from .report_state import (
    PRICE_PRECISION,
    ZERO_ADDRESS,
    CreateReportParams,
    DisputeRecord,
    ExtraData,
    ReportConfig,
    ReportState,
    TimeUnit,
    can_transition,
    compute_price,
)
from .utils.encoding import stringify_ints

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Reserved addresses
ORACLE_ADDRESS = b'\x00' * 19 + b'\x20'

# Protocol constants
PERCENTAGE_PRECISION = 10**7
MULTIPLIER_PRECISION = 100
SETTLEMENT_WINDOW = 60  # seconds
SETTLEMENT_WINDOW_BLOCKS = 4
MIN_CREATION_BOND = 100


# ==============================================================================
# PURE RULES
# ==============================================================================

def compute_integrity_hash(config: ReportConfig, creator: bytes, keep_fee_on_dispute: bool,
                           callback_target: bytes, callback_selector: bytes,
                           callback_gas_limit: int) -> bytes:
    """Keccak-256 commitment over a report's immutable economics and creator."""
    preimage = [
        config.asset1,
        config.asset2,
        config.exact_asset1_amount,
        config.fee_rate,
        config.escalation_multiplier,
        config.settlement_duration,
        config.escalation_halt,
        config.dispute_delay,
        config.protocol_fee_rate,
        config.settler_reward,
        config.reporter_reward,
        config.creation_tick,
        config.time_unit.value,
        keep_fee_on_dispute,
        callback_target,
        callback_selector,
        callback_gas_limit,
        creator,
    ]
    return generate_hash(msgpack.packb(stringify_ints(preimage), use_bin_type=True))


def required_escalation(old_amount1: int, multiplier: int, escalation_halt: int) -> int:
    """Asset1 amount the next dispute must post.

    Multiplier-scaled until the halt threshold is reached, then the
    smallest strict increase.
    """
    if escalation_halt > old_amount1:
        return old_amount1 * multiplier // MULTIPLIER_PRECISION
    return old_amount1 + 1


def fee_band(old_price: int, fee_rate: int) -> tuple[int, int]:
    """Inclusive price range a dispute must land outside of."""
    band = old_price * fee_rate // PERCENTAGE_PRECISION
    return max(old_price - band, 0), old_price + band


def is_outside_fee_band(old_price: int, new_price: int, fee_rate: int) -> bool:
    lower, upper = fee_band(old_price, fee_rate)
    return new_price < lower or new_price > upper


class ReportView:
    """Read-only bundle of everything stored about one report."""
    __slots__ = ('report_id', 'config', 'status', 'extra', 'state')

    def __init__(self, report_id, config, status, extra):
        self.report_id = report_id
        self.config = config
        self.status = status
        self.extra = extra
        self.state = status.state

    def __repr__(self) -> str:
        return f"ReportView(id={self.report_id}, state={self.state.value}, price={self.status.price})"


# ==============================================================================
# MAIN ORACLE CLASS
# ==============================================================================

class OpenOracle:
    def __init__(self, ledger: Ledger, owner: bytes, fee_recipient: Optional[bytes] = None,
                 config: Optional[Config] = None, address: bytes = ORACLE_ADDRESS,
                 monitor=None):
        self.config = config or Config.default()
        self.ledger = ledger
        self.clock = ledger.clock
        self.address = address
        self.chain_id = self.config.chain.chain_id

        protocol = self.config.protocol
        self.settlement_window = protocol.settlement_window
        self.settlement_window_blocks = protocol.settlement_window_blocks
        self.min_creation_bond = protocol.min_creation_bond
        self.callback_gas_reserve = protocol.callback_gas_reserve

        self.registry = ReportRegistry()
        self.events = EventLog()
        self.custodian = FundCustodian(ledger, address)
        self.treasury = FeeTreasury(self.custodian, owner, fee_recipient or owner)
        self.monitor = monitor
        if self.monitor is None and self.config.monitoring.enabled:
            mon = self.config.monitoring
            self.monitor = Monitor(self, host=mon.host, port=mon.port, start_server=True)

        logging.getLogger("open_oracle").setLevel(self.config.logging.level)

        self._lock = threading.RLock()
        self._entered = False

        logger.info(f"Oracle deployed at {address.hex()} (owner {owner.hex()[:8]})")

    # ==========================================================================
    # PROPERTIES
    # ==========================================================================

    @property
    def owner(self) -> bytes:
        return self.treasury.owner

    @property
    def protocol_fee_recipient(self) -> bytes:
        return self.treasury.recipient

    @property
    def next_report_id(self) -> int:
        return self.registry.next_report_id

    # ==========================================================================
    # EXECUTION GUARD
    # ==========================================================================

    @contextmanager
    def _entry(self, operation: str, call: Call, payable: bool = False):
        with self._lock:
            if self._entered:
                raise StateConflict("reentrant call", operation=operation)
            self._entered = True
            started = time.time()
            # Ledger and registry journal their own writes; these are small
            treasury = self.treasury.snapshot()
            event_count = len(self.events)
            forfeited = self.custodian.forfeited_native
            try:
                with self.ledger.isolated(), self.registry.isolated():
                    if call.value and not payable:
                        raise ConfigValidation("operation does not accept native value", operation=operation)
                    gas = GasMetering(call.gas)
                    gas.charge(GasMetering.BASE_CALL_COST, "base_call")
                    gas.charge(GasMetering.OP_COSTS.get(operation, 50000), operation)
                    yield gas
                    logger.debug(f"{operation} used {gas.gas_used}/{gas.gas_limit} gas")
            except Exception as e:
                self.treasury.restore(treasury)
                self.events.truncate(event_count)
                self.custodian.forfeited_native = forfeited
                logger.warning(f"{operation} failed: {e}")
                self._record_op(operation, "failed", started)
                raise
            else:
                self._record_op(operation, "success", started)
            finally:
                self._entered = False

    def _record_op(self, operation: str, status: str, started: float):
        if self.monitor is not None:
            self.monitor.record_op(operation, status, time.time() - started)
            self.monitor.update()

    def _now(self, config: ReportConfig) -> int:
        return self.clock.now(config.time_unit)

    def _window(self, config: ReportConfig) -> int:
        if config.time_unit == TimeUnit.SECONDS:
            return self.settlement_window
        return self.settlement_window_blocks

    @staticmethod
    def _require_transition(report_id: int, current: ReportState, target: ReportState):
        if not can_transition(current, target):
            raise StateConflict(
                "invalid state transition",
                report_id=report_id,
                current=current.value,
                target=target.value,
            )

    # ==========================================================================
    # CREATE
    # ==========================================================================

    def _validate_params(self, params: CreateReportParams, bond: int):
        if bond <= self.min_creation_bond:
            raise InsufficientBond("creation bond too small", bond=bond, minimum=self.min_creation_bond)
        if params.exact_asset1_amount <= 0:
            raise ConfigValidation("exact asset1 amount must be positive")
        if params.asset1 == params.asset2:
            raise ConfigValidation("assets must differ")
        if params.settlement_duration < params.dispute_delay:
            raise ConfigValidation(
                "settlement duration shorter than dispute delay",
                settlement_duration=params.settlement_duration,
                dispute_delay=params.dispute_delay,
            )
        if bond <= params.settler_reward:
            raise InsufficientBond("bond must exceed settler reward", bond=bond,
                                   settler_reward=params.settler_reward)
        for name in ('fee_rate', 'escalation_multiplier', 'settlement_duration', 'escalation_halt',
                     'dispute_delay', 'protocol_fee_rate', 'settler_reward', 'callback_gas_limit'):
            if getattr(params, name) < 0:
                raise ConfigValidation("parameter cannot be negative", parameter=name)
        if params.escalation_multiplier <= MULTIPLIER_PRECISION:
            raise ConfigValidation(
                "escalation multiplier must grow the stake",
                escalation_multiplier=params.escalation_multiplier,
                minimum=MULTIPLIER_PRECISION + 1,
            )
        if len(params.callback_selector) != 4:
            raise ConfigValidation("callback selector must be 4 bytes")

    def create_report_instance(self, call: Call, params: CreateReportParams) -> int:
        """Create a Pending report; the call value is the creation bond."""
        with self._entry(CREATE_REPORT, call, payable=True) as gas:
            bond = call.value
            self._validate_params(params, bond)

            config = ReportConfig(
                asset1=params.asset1,
                asset2=params.asset2,
                exact_asset1_amount=params.exact_asset1_amount,
                fee_rate=params.fee_rate,
                escalation_multiplier=params.escalation_multiplier,
                settlement_duration=params.settlement_duration,
                escalation_halt=params.escalation_halt,
                dispute_delay=params.dispute_delay,
                protocol_fee_rate=params.protocol_fee_rate,
                settler_reward=params.settler_reward,
                reporter_reward=bond - params.settler_reward,
                creation_tick=self.clock.now(params.time_unit),
                time_unit=params.time_unit,
            )
            integrity_hash = compute_integrity_hash(
                config, call.sender, params.keep_fee_on_dispute,
                params.callback_target, params.callback_selector, params.callback_gas_limit,
            )
            extra = ExtraData(
                integrity_hash=integrity_hash,
                creator=call.sender,
                track_disputes=params.track_disputes,
                callback_target=params.callback_target,
                callback_selector=params.callback_selector,
                callback_gas_limit=params.callback_gas_limit,
                keep_fee_on_dispute=params.keep_fee_on_dispute,
            )

            gas.charge(GasMetering.TRANSFER, "pull_bond")
            self.custodian.pull_native(call.sender, bond)

            gas.charge(GasMetering.STORAGE_WRITE * 3, "write_report")
            report_id = self.registry.allocate(config, extra)

            self.events.emit(
                EventKind.REPORT_INSTANCE_CREATED, report_id, tick=config.creation_tick,
                creator=call.sender,
                asset1=config.asset1,
                asset2=config.asset2,
                exact_asset1_amount=config.exact_asset1_amount,
                fee_rate=config.fee_rate,
                escalation_multiplier=config.escalation_multiplier,
                settlement_duration=config.settlement_duration,
                escalation_halt=config.escalation_halt,
                dispute_delay=config.dispute_delay,
                protocol_fee_rate=config.protocol_fee_rate,
                settler_reward=config.settler_reward,
                reporter_reward=config.reporter_reward,
                time_unit=config.time_unit.value,
                track_disputes=extra.track_disputes,
                keep_fee_on_dispute=extra.keep_fee_on_dispute,
                callback_target=extra.callback_target,
                callback_selector=extra.callback_selector,
                callback_gas_limit=extra.callback_gas_limit,
                integrity_hash=integrity_hash,
            )
            logger.info(f"Report {report_id} created by {call.sender.hex()[:8]} with bond {bond}")
            return report_id

    # ==========================================================================
    # INITIAL REPORT
    # ==========================================================================

    def submit_initial_report(self, call: Call, report_id: int, amount1: int, amount2: int,
                              integrity_hash: bytes, reporter: Optional[bytes] = None):
        """First reporter escrows both amounts; `reporter` receives the rights."""
        with self._entry(SUBMIT_INITIAL_REPORT, call) as gas:
            gas.charge(GasMetering.STORAGE_READ * 3, "read_report")
            record = self.registry.get(report_id)
            config, status, extra = record.config, record.status, record.extra

            if status.state != ReportState.PENDING:
                raise StateConflict("report already submitted", report_id=report_id)
            if amount1 != config.exact_asset1_amount:
                raise ConfigValidation(
                    "amount1 must equal the exact asset1 amount",
                    expected=config.exact_asset1_amount,
                    got=amount1,
                )
            if amount2 <= 0:
                raise ConfigValidation("amount2 must be positive", got=amount2)
            if integrity_hash != extra.integrity_hash:
                raise IntegrityMismatch("integrity hash mismatch", report_id=report_id)
            self._require_transition(report_id, status.state, ReportState.REPORTED)

            beneficiary = reporter if reporter and reporter != ZERO_ADDRESS else call.sender

            gas.charge(GasMetering.TRANSFER * 2, "escrow_amounts")
            self.custodian.move_asset(config.asset1, call.sender, self.address, amount1)
            self.custodian.move_asset(config.asset2, call.sender, self.address, amount2)

            now = self._now(config)
            status.set_amounts(amount1, amount2)
            status.current_reporter = beneficiary
            status.initial_reporter = beneficiary
            status.report_tick = now
            status.initial_report_tick = now
            gas.charge(GasMetering.STORAGE_WRITE * 4, "write_status")
            self.registry.append_history(report_id, DisputeRecord(amount1, amount2, None, now))

            self.events.emit(
                EventKind.INITIAL_REPORT_SUBMITTED, report_id, tick=now,
                reporter=beneficiary,
                payer=call.sender,
                asset1=config.asset1,
                asset2=config.asset2,
                amount1=amount1,
                amount2=amount2,
                price=status.price,
                fee_rate=config.fee_rate,
                settlement_duration=config.settlement_duration,
                dispute_delay=config.dispute_delay,
                escalation_halt=config.escalation_halt,
                integrity_hash=extra.integrity_hash,
            )
            logger.info(f"Report {report_id} submitted by {beneficiary.hex()[:8]} at price {status.price}")

    # ==========================================================================
    # DISPUTE
    # ==========================================================================

    def dispute_and_swap(self, call: Call, report_id: int, asset_to_swap: bytes,
                         new_amount1: int, new_amount2: int, expected_amount2: int,
                         integrity_hash: bytes, disputer: Optional[bytes] = None):
        """Replace the current reporter with an escalated, re-priced stake.

        The caller pays; `disputer` (defaulting to the caller) becomes the
        new current reporter.
        """
        with self._entry(DISPUTE_AND_SWAP, call) as gas:
            gas.charge(GasMetering.STORAGE_READ * 3, "read_report")
            record = self.registry.get(report_id)
            config, status, extra = record.config, record.status, record.extra
            now = self._now(config)

            if not status.has_reporter:
                raise StateConflict("no report to dispute", report_id=report_id)
            if now >= status.report_tick + config.settlement_duration:
                raise TimingViolation("dispute period expired", report_id=report_id, now=now)
            if now < status.report_tick + config.dispute_delay:
                raise TimingViolation("too early", report_id=report_id, now=now,
                                      earliest=status.report_tick + config.dispute_delay)
            if status.is_settled or status.is_distributed:
                raise StateConflict("report already settled", report_id=report_id)
            if asset_to_swap not in (config.asset1, config.asset2):
                raise ConfigValidation("asset to swap is not part of the report")
            if status.report_tick == now:
                raise TimingViolation("already reported in this tick", report_id=report_id, tick=now)
            if expected_amount2 != status.current_amount2:
                raise IntegrityMismatch(
                    "amount2 changed",
                    expected=expected_amount2,
                    current=status.current_amount2,
                )
            if integrity_hash != extra.integrity_hash:
                raise IntegrityMismatch("integrity hash mismatch", report_id=report_id)
            self._require_transition(report_id, status.state, ReportState.REPORTED)

            old1, old2 = status.current_amount1, status.current_amount2
            if new_amount2 <= 0:
                raise BoundsViolation("amount2 must be positive", got=new_amount2)

            gas.charge(GasMetering.COMPUTATION * 10, "escalation_and_band")
            required1 = required_escalation(old1, config.escalation_multiplier, config.escalation_halt)
            if new_amount1 != required1:
                raise BoundsViolation("new amount1 does not follow escalation",
                                      expected=required1, got=new_amount1)

            old_price = status.price
            new_price = compute_price(new_amount1, new_amount2)
            if not is_outside_fee_band(old_price, new_price, config.fee_rate):
                lower, upper = fee_band(old_price, config.fee_rate)
                raise BoundsViolation("new price within fee band",
                                      price=new_price, lower=lower, upper=upper)

            if asset_to_swap == config.asset1:
                old_swapped, new_swapped = old1, new_amount1
                other_asset, old_other, new_other = config.asset2, old2, new_amount2
            else:
                old_swapped, new_swapped = old2, new_amount2
                other_asset, old_other, new_other = config.asset1, old1, new_amount1

            fee = old_swapped * config.fee_rate // PERCENTAGE_PRECISION
            protocol_fee = old_swapped * config.protocol_fee_rate // PERCENTAGE_PRECISION
            payer = call.sender
            previous_reporter = status.current_reporter

            gas.charge(GasMetering.TRANSFER * 3, "swap_transfers")
            self.custodian.move_asset(asset_to_swap, payer, self.address,
                                      old_swapped + fee + protocol_fee + new_swapped)
            self.custodian.move_asset(asset_to_swap, self.address, previous_reporter,
                                      2 * old_swapped + fee)
            self.treasury.credit_protocol_fee(asset_to_swap, protocol_fee)

            if new_other > old_other:
                self.custodian.move_asset(other_asset, payer, self.address, new_other - old_other)
            elif new_other < old_other:
                self.custodian.move_asset(other_asset, self.address, payer, old_other - new_other)

            new_reporter = disputer if disputer and disputer != ZERO_ADDRESS else payer
            status.set_amounts(new_amount1, new_amount2)
            status.current_reporter = new_reporter
            status.report_tick = now
            status.dispute_occurred = True
            extra.dispute_count += 1
            gas.charge(GasMetering.STORAGE_WRITE * 4, "write_status")
            self.registry.append_history(
                report_id, DisputeRecord(new_amount1, new_amount2, asset_to_swap, now)
            )

            self.events.emit(
                EventKind.REPORT_DISPUTED, report_id, tick=now,
                disputer=new_reporter,
                payer=payer,
                previous_reporter=previous_reporter,
                asset_swapped=asset_to_swap,
                old_amount1=old1,
                old_amount2=old2,
                new_amount1=new_amount1,
                new_amount2=new_amount2,
                old_price=old_price,
                price=status.price,
                fee=fee,
                protocol_fee=protocol_fee,
                dispute_count=extra.dispute_count,
            )
            if self.monitor is not None:
                self.monitor.record_dispute()
            logger.info(
                f"Report {report_id} disputed by {new_reporter.hex()[:8]}: "
                f"price {old_price} -> {status.price}"
            )

    # ==========================================================================
    # SETTLE
    # ==========================================================================

    def settle(self, call: Call, report_id: int) -> tuple[int, int]:
        """Finalize a report and release its escrow.

        Returns (price, settlement_tick), or (0, 0) when the settlement
        window had already lapsed. Calling again is a no-op returning the
        same values.
        """
        with self._entry(SETTLE, call) as gas:
            gas.charge(GasMetering.STORAGE_READ * 3, "read_report")
            record = self.registry.get(report_id)
            config, status, extra = record.config, record.status, record.extra
            now = self._now(config)

            if not status.has_reporter:
                raise StateConflict("no report to settle", report_id=report_id)
            if now < status.report_tick + config.settlement_duration:
                raise TimingViolation("settlement time not reached", report_id=report_id, now=now,
                                      earliest=status.report_tick + config.settlement_duration)

            if status.is_settled or status.is_distributed:
                if status.is_settled:
                    return status.price, status.settlement_tick
                return 0, 0

            in_window = now < status.report_tick + config.settlement_duration + self._window(config)
            price, settlement_tick = 0, 0
            if in_window:
                self._require_transition(report_id, status.state, ReportState.SETTLED)
                status.is_settled = True
                status.settlement_tick = now
                price, settlement_tick = status.price, now
                self.events.emit(
                    EventKind.REPORT_SETTLED, report_id, tick=now,
                    price=price,
                    settlement_tick=now,
                    amount1=status.current_amount1,
                    amount2=status.current_amount2,
                    reporter=status.current_reporter,
                    settler=call.sender,
                )

            self._require_transition(report_id, status.state, ReportState.DISTRIBUTED)
            status.is_distributed = True
            amount1, amount2 = status.current_amount1, status.current_amount2
            reporter = status.current_reporter
            status.current_amount1 = 0
            status.current_amount2 = 0
            gas.charge(GasMetering.STORAGE_WRITE * 3, "write_status")

            if extra.has_callback:
                result = dispatch_settlement_callback(
                    self.ledger, gas, extra.callback_target, extra.callback_selector,
                    extra.callback_gas_limit, report_id, price, settlement_tick,
                    config.asset1, config.asset2, reserve=self.callback_gas_reserve,
                )
                self.events.emit(
                    EventKind.SETTLEMENT_CALLBACK_EXECUTED, report_id, tick=now,
                    target=extra.callback_target,
                    selector=extra.callback_selector,
                    gas_limit=extra.callback_gas_limit,
                    gas_used=result.gas_used,
                    success=result.success,
                )
                if self.monitor is not None:
                    self.monitor.record_callback(result.success)

            gas.charge(GasMetering.TRANSFER * 4, "payouts")
            self._pay_native(report_id, now, call.sender, config.settler_reward)
            if not status.dispute_occurred or extra.keep_fee_on_dispute:
                self._pay_native(report_id, now, status.initial_reporter, config.reporter_reward)
            else:
                self.treasury.credit_native(config.reporter_reward)

            self.custodian.move_asset(config.asset1, self.address, reporter, amount1)
            self.custodian.move_asset(config.asset2, self.address, reporter, amount2)

            if self.monitor is not None:
                self.monitor.record_settlement(in_window)
            logger.info(
                f"Report {report_id} distributed to {reporter.hex()[:8]} "
                f"({'settled at ' + str(price) if in_window else 'window lapsed'})"
            )
            return price, settlement_tick

    def _pay_native(self, report_id: int, tick: int, to: bytes, amount: int):
        if not self.custodian.move_native(to, amount):
            self.events.emit(
                EventKind.NATIVE_PAYMENT_FORFEITED, report_id, tick=tick,
                recipient=to,
                amount=amount,
            )

    # ==========================================================================
    # VIEWS
    # ==========================================================================

    def get_settlement_data(self, report_id: int) -> tuple[int, int]:
        status = self.registry.get_status(report_id)
        if not status.is_settled:
            raise StateConflict("report not settled", report_id=report_id)
        return status.price, status.settlement_tick

    def get_report(self, report_id: int) -> ReportView:
        record = self.registry.get(report_id)
        return ReportView(report_id, record.config, record.status, record.extra)

    def get_dispute_history(self, report_id: int) -> list[DisputeRecord]:
        return self.registry.get_history(report_id)

    def contract_balance(self, asset: bytes) -> int:
        return self.ledger.balance_of(self.address, asset)

    # ==========================================================================
    # TREASURY
    # ==========================================================================

    def withdraw_protocol_fees(self, call: Call, asset: bytes) -> int:
        with self._entry(WITHDRAW_PROTOCOL_FEES, call):
            return self.treasury.withdraw_protocol_fees(asset)

    def withdraw_native_fees(self, call: Call) -> int:
        with self._entry(WITHDRAW_NATIVE_FEES, call):
            return self.treasury.withdraw_native_fees()

    def update_fee_recipient(self, call: Call, new_recipient: bytes):
        with self._entry(UPDATE_FEE_RECIPIENT, call):
            old = self.treasury.update_fee_recipient(call.sender, new_recipient)
            self.events.emit(
                EventKind.PROTOCOL_FEE_RECIPIENT_UPDATED,
                old_recipient=old,
                new_recipient=new_recipient,
            )
            logger.info(f"Fee recipient changed {old.hex()[:8]} -> {new_recipient.hex()[:8]}")

    def transfer_ownership(self, call: Call, new_owner: bytes):
        with self._entry("TRANSFER_OWNERSHIP", call):
            old = self.treasury.transfer_ownership(call.sender, new_owner)
            self.events.emit(
                EventKind.OWNERSHIP_TRANSFERRED,
                previous_owner=old,
                new_owner=new_owner,
            )

    # ==========================================================================
    # TRANSACTION PROCESSING
    # ==========================================================================

    def process_transaction(self, tx: Transaction):
        """
        Execute a signed transaction:
        - signature and chain id verification
        - nonce check; the nonce is consumed even if the operation fails
        - dispatch by tx_type
        """
        is_valid, error = tx.validate_basic()
        if not is_valid:
            raise ValidationError(error)

        if tx.chain_id != self.chain_id:
            raise ValidationError(f"Wrong chain ID. Expected {self.chain_id}, got {tx.chain_id}")

        sender_address = tx.sender_address
        expected_nonce = self.ledger.get_nonce(sender_address)
        if tx.nonce != expected_nonce:
            raise ValidationError(f"Invalid nonce. Expected {expected_nonce}, got {tx.nonce}")
        self.ledger.increment_nonce(sender_address)

        try:
            handler, args, kwargs = self._decode_payload(tx.tx_type, tx.data)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise ConfigValidation("malformed transaction data", tx_type=tx.tx_type, error=str(e)) from e
        return handler(tx.to_call(), *args, **kwargs)

    def _decode_payload(self, tx_type: str, data: dict) -> tuple:
        """Map a transaction payload onto an entry point and its arguments."""
        if tx_type == CREATE_REPORT:
            return self.create_report_instance, (CreateReportParams.from_dict(data),), {}

        elif tx_type == SUBMIT_INITIAL_REPORT:
            return self.submit_initial_report, (
                data['report_id'],
                int(data['amount1']),
                int(data['amount2']),
                bytes.fromhex(data['integrity_hash']),
            ), {'reporter': _optional_address(data.get('reporter'))}

        elif tx_type == DISPUTE_AND_SWAP:
            return self.dispute_and_swap, (
                data['report_id'],
                bytes.fromhex(data['asset_to_swap']),
                int(data['new_amount1']),
                int(data['new_amount2']),
                int(data['expected_amount2']),
                bytes.fromhex(data['integrity_hash']),
            ), {'disputer': _optional_address(data.get('disputer'))}

        elif tx_type == SETTLE:
            return self.settle, (data['report_id'],), {}

        elif tx_type == WITHDRAW_PROTOCOL_FEES:
            return self.withdraw_protocol_fees, (bytes.fromhex(data['asset']),), {}

        elif tx_type == WITHDRAW_NATIVE_FEES:
            return self.withdraw_native_fees, (), {}

        elif tx_type == UPDATE_FEE_RECIPIENT:
            return self.update_fee_recipient, (bytes.fromhex(data['recipient']),), {}

        else:
            raise ValidationError(f"Unknown transaction type: {tx_type}")


def _optional_address(value: Optional[str]) -> Optional[bytes]:
    return bytes.fromhex(value) if value else None


