"""
Append-only event log, indexed by report id.

Events carry the effective parameters of each operation plus computed
values, so an observer can rebuild report state without reading the
registry.
"""
import enum
import msgpack
from typing import Any, Optional

from .crypto import generate_hash
from .utils.encoding import stringify_ints


class EventKind(str, enum.Enum):
    REPORT_INSTANCE_CREATED = "ReportInstanceCreated"
    INITIAL_REPORT_SUBMITTED = "InitialReportSubmitted"
    REPORT_DISPUTED = "ReportDisputed"
    REPORT_SETTLED = "ReportSettled"
    SETTLEMENT_CALLBACK_EXECUTED = "SettlementCallbackExecuted"
    PROTOCOL_FEE_RECIPIENT_UPDATED = "ProtocolFeeRecipientUpdated"
    OWNERSHIP_TRANSFERRED = "OwnershipTransferred"
    NATIVE_PAYMENT_FORFEITED = "NativePaymentForfeited"


class EventRecord:
    __slots__ = ('index', 'kind', 'report_id', 'tick', 'payload', 'event_hash')

    def __init__(self, index: int, kind: EventKind, report_id: Optional[int],
                 tick: int, payload: dict[str, Any]):
        self.index = index
        self.kind = kind
        self.report_id = report_id
        self.tick = tick
        self.payload = payload
        self.event_hash = generate_hash(msgpack.packb(
            stringify_ints([index, kind.value, report_id, tick, payload]), use_bin_type=True
        ))

    def __getitem__(self, key: str):
        return self.payload[key]

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "kind": self.kind.value,
            "report_id": self.report_id,
            "tick": self.tick,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }

    def __repr__(self) -> str:
        return f"EventRecord({self.kind.value}, report_id={self.report_id}, index={self.index})"


class EventLog:
    def __init__(self):
        self._events: list[EventRecord] = []
        self._by_report: dict[int, list[int]] = {}

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(self._events)

    def emit(self, kind: EventKind, report_id: Optional[int] = None,
             tick: int = 0, **payload) -> EventRecord:
        record = EventRecord(len(self._events), kind, report_id, tick, payload)
        self._events.append(record)
        if report_id is not None:
            self._by_report.setdefault(report_id, []).append(record.index)
        return record

    def for_report(self, report_id: int) -> list[EventRecord]:
        return [self._events[i] for i in self._by_report.get(report_id, [])]

    def of_kind(self, kind: EventKind) -> list[EventRecord]:
        return [e for e in self._events if e.kind == kind]

    def last(self, kind: Optional[EventKind] = None) -> Optional[EventRecord]:
        for event in reversed(self._events):
            if kind is None or event.kind == kind:
                return event
        return None

    def truncate(self, length: int):
        """Drop events past `length`. Only used to roll back a failed call."""
        for record in self._events[length:]:
            if record.report_id is not None:
                self._by_report[record.report_id].remove(record.index)
        del self._events[length:]
