"""
Per-report records: immutable configuration, live status, extra metadata
and dispute history snapshots.
"""
import enum
from dataclasses import dataclass, asdict
from typing import Optional

PRICE_PRECISION = 10**18

ZERO_ADDRESS = b'\x00' * 20


class TimeUnit(enum.Enum):
    """Discrete time unit a report measures all of its windows in."""
    SECONDS = 'seconds'
    BLOCKS = 'blocks'


class ReportState(enum.Enum):
    PENDING = 'pending'
    REPORTED = 'reported'
    SETTLED = 'settled'
    DISTRIBUTED = 'distributed'


# Settled is optional on the way to Distributed: a late settle skips it.
_TRANSITIONS = {
    ReportState.PENDING: {ReportState.REPORTED},
    ReportState.REPORTED: {ReportState.REPORTED, ReportState.SETTLED, ReportState.DISTRIBUTED},
    ReportState.SETTLED: {ReportState.DISTRIBUTED},
    ReportState.DISTRIBUTED: set(),
}


def can_transition(current: ReportState, target: ReportState) -> bool:
    return target in _TRANSITIONS[current]


def compute_price(amount1: int, amount2: int) -> int:
    """Asset1 per asset2, scaled by PRICE_PRECISION."""
    if amount2 == 0:
        return 0
    return amount1 * PRICE_PRECISION // amount2


@dataclass(frozen=True)
class ReportConfig:
    """Economic parameters fixed when a report is created."""
    asset1: bytes
    asset2: bytes
    exact_asset1_amount: int
    fee_rate: int
    escalation_multiplier: int
    settlement_duration: int
    escalation_halt: int
    dispute_delay: int
    protocol_fee_rate: int
    settler_reward: int
    reporter_reward: int
    creation_tick: int
    time_unit: TimeUnit = TimeUnit.SECONDS

    def to_dict(self) -> dict:
        data = asdict(self)
        data['time_unit'] = self.time_unit.value
        return data

    @staticmethod
    def from_dict(data: dict) -> 'ReportConfig':
        fields = {
            k: (v if isinstance(v, (bytes, bool)) or k == 'time_unit' else int(v))
            for k, v in data.items()
        }
        fields['time_unit'] = TimeUnit(fields.get('time_unit', TimeUnit.SECONDS.value))
        return ReportConfig(**fields)


class ReportStatus:
    """Mutable state of a report. Amounts are zeroed after distribution."""

    def __init__(self, data: dict = None):
        if data is None:
            data = {}

        self.current_amount1 = int(data.get('current_amount1', 0))
        self.current_amount2 = int(data.get('current_amount2', 0))
        self.price = int(data.get('price', 0))
        self.current_reporter = data.get('current_reporter', ZERO_ADDRESS)
        self.initial_reporter = data.get('initial_reporter', ZERO_ADDRESS)
        self.report_tick = int(data.get('report_tick', 0))
        self.initial_report_tick = int(data.get('initial_report_tick', 0))
        self.settlement_tick = int(data.get('settlement_tick', 0))
        self.is_settled = bool(data.get('is_settled', False))
        self.dispute_occurred = bool(data.get('dispute_occurred', False))
        self.is_distributed = bool(data.get('is_distributed', False))

    def to_dict(self) -> dict:
        return {
            'current_amount1': self.current_amount1,
            'current_amount2': self.current_amount2,
            'price': self.price,
            'current_reporter': self.current_reporter,
            'initial_reporter': self.initial_reporter,
            'report_tick': self.report_tick,
            'initial_report_tick': self.initial_report_tick,
            'settlement_tick': self.settlement_tick,
            'is_settled': self.is_settled,
            'dispute_occurred': self.dispute_occurred,
            'is_distributed': self.is_distributed,
        }

    @property
    def has_reporter(self) -> bool:
        return self.current_reporter != ZERO_ADDRESS

    @property
    def state(self) -> ReportState:
        if self.is_distributed:
            return ReportState.DISTRIBUTED
        if self.is_settled:
            return ReportState.SETTLED
        if self.has_reporter:
            return ReportState.REPORTED
        return ReportState.PENDING

    def set_amounts(self, amount1: int, amount2: int):
        """Replace the escrowed amounts and recompute the price."""
        self.current_amount1 = amount1
        self.current_amount2 = amount2
        self.price = compute_price(amount1, amount2)

    def __repr__(self) -> str:
        return (
            f"ReportStatus("
            f"amount1={self.current_amount1}, "
            f"amount2={self.current_amount2}, "
            f"price={self.price}, "
            f"state={self.state.value})"
        )


class ExtraData:
    __slots__ = (
        'integrity_hash', 'creator', 'track_disputes', 'dispute_count',
        'callback_target', 'callback_selector', 'callback_gas_limit',
        'keep_fee_on_dispute',
    )

    def __init__(self, integrity_hash: bytes, creator: bytes,
                 track_disputes: bool = False,
                 callback_target: bytes = ZERO_ADDRESS,
                 callback_selector: bytes = b'\x00' * 4,
                 callback_gas_limit: int = 0,
                 keep_fee_on_dispute: bool = False,
                 dispute_count: int = 0):
        self.integrity_hash = integrity_hash
        self.creator = creator
        self.track_disputes = track_disputes
        self.dispute_count = dispute_count
        self.callback_target = callback_target
        self.callback_selector = callback_selector
        self.callback_gas_limit = callback_gas_limit
        self.keep_fee_on_dispute = keep_fee_on_dispute

    @property
    def has_callback(self) -> bool:
        return self.callback_target != ZERO_ADDRESS and self.callback_gas_limit > 0

    def to_dict(self):
        return {name: getattr(self, name) for name in self.__slots__}

    @staticmethod
    def from_dict(d):
        fields = dict(d)
        fields['dispute_count'] = int(fields.get('dispute_count', 0))
        fields['callback_gas_limit'] = int(fields.get('callback_gas_limit', 0))
        return ExtraData(**fields)


class DisputeRecord:
    """Snapshot of a report after its initial submission or a dispute."""
    __slots__ = ('amount1', 'amount2', 'swapped_asset', 'tick')

    def __init__(self, amount1: int, amount2: int, swapped_asset: Optional[bytes], tick: int):
        self.amount1 = amount1
        self.amount2 = amount2
        self.swapped_asset = swapped_asset
        self.tick = tick

    def to_dict(self):
        return {
            "amount1": self.amount1,
            "amount2": self.amount2,
            "swapped_asset": self.swapped_asset,
            "tick": self.tick,
        }

    @staticmethod
    def from_dict(d):
        return DisputeRecord(int(d["amount1"]), int(d["amount2"]), d["swapped_asset"], int(d["tick"]))

    def __eq__(self, other):
        if not isinstance(other, DisputeRecord):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"DisputeRecord({self.to_dict()})"


@dataclass
class CreateReportParams:
    """Arguments to create a report. The creation bond rides on the call value."""
    asset1: bytes
    asset2: bytes
    exact_asset1_amount: int
    fee_rate: int
    escalation_multiplier: int
    settlement_duration: int
    escalation_halt: int
    dispute_delay: int
    protocol_fee_rate: int
    settler_reward: int
    time_unit: TimeUnit = TimeUnit.SECONDS
    track_disputes: bool = False
    callback_target: bytes = ZERO_ADDRESS
    callback_selector: bytes = b'\x00' * 4
    callback_gas_limit: int = 0
    keep_fee_on_dispute: bool = False

    def to_dict(self) -> dict:
        """JSON/msgpack friendly form with hex-encoded byte fields."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, bytes):
                data[key] = value.hex()
        data['time_unit'] = self.time_unit.value
        return data

    @staticmethod
    def from_dict(data: dict) -> 'CreateReportParams':
        fields = dict(data)
        for key in ('asset1', 'asset2', 'callback_target', 'callback_selector'):
            if isinstance(fields.get(key), str):
                fields[key] = bytes.fromhex(fields[key])
        if 'time_unit' in fields:
            fields['time_unit'] = TimeUnit(fields['time_unit'])
        return CreateReportParams(**fields)
