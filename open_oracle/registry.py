"""
Report registry: an owned table of report records keyed by a monotonically
increasing integer id. Records are never removed.
"""
import copy
import logging
import msgpack
from contextlib import contextmanager
from typing import Iterator, Optional

from .errors import StateConflict
from .report_state import ReportConfig, ReportStatus, ExtraData, DisputeRecord
from .utils.encoding import stringify_ints

logger = logging.getLogger(__name__)


class ReportRecord:
    __slots__ = ('config', 'status', 'extra', 'history')

    def __init__(self, config: ReportConfig, status: ReportStatus, extra: ExtraData,
                 history: list = None):
        self.config = config
        self.status = status
        self.extra = extra
        self.history = history if history is not None else []

    def to_dict(self):
        return {
            "config": self.config.to_dict(),
            "status": self.status.to_dict(),
            "extra": self.extra.to_dict(),
            "history": [entry.to_dict() for entry in self.history],
        }

    @staticmethod
    def from_dict(d):
        return ReportRecord(
            ReportConfig.from_dict(d["config"]),
            ReportStatus(d["status"]),
            ExtraData.from_dict(d["extra"]),
            [DisputeRecord.from_dict(entry) for entry in d["history"]],
        )


class ReportRegistry:
    def __init__(self):
        self._records: dict[int, ReportRecord] = {}
        self.next_report_id = 1
        # report id -> record as it was before the open isolated() block
        # touched it; None for records allocated inside the block
        self._saved: Optional[dict[int, Optional[ReportRecord]]] = None

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, report_id: int) -> bool:
        return report_id in self._records

    def ids(self) -> Iterator[int]:
        return iter(sorted(self._records))

    def allocate(self, config: ReportConfig, extra: ExtraData) -> int:
        """Store a new Pending record and return its id."""
        report_id = self.next_report_id
        self._records[report_id] = ReportRecord(config, ReportStatus(), extra)
        self.next_report_id += 1
        if self._saved is not None:
            self._saved.setdefault(report_id, None)
        return report_id

    def get(self, report_id: int) -> ReportRecord:
        """Live record. Inside isolated() the first access saves a copy."""
        record = self._records.get(report_id)
        if record is None:
            raise StateConflict("report does not exist", report_id=report_id)
        if self._saved is not None and report_id not in self._saved:
            self._saved[report_id] = copy.deepcopy(record)
        return record

    def get_config(self, report_id: int) -> ReportConfig:
        return self.get(report_id).config

    def get_status(self, report_id: int) -> ReportStatus:
        return self.get(report_id).status

    def get_extra(self, report_id: int) -> ExtraData:
        return self.get(report_id).extra

    def get_history(self, report_id: int) -> list[DisputeRecord]:
        return list(self.get(report_id).history)

    def append_history(self, report_id: int, entry: DisputeRecord):
        record = self.get(report_id)
        if not record.extra.track_disputes:
            return
        record.history.append(entry)

    def escrowed_totals(self) -> dict[bytes, int]:
        """Sum of current amounts per asset over non-distributed reports."""
        totals: dict[bytes, int] = {}
        for record in self._records.values():
            if record.status.is_distributed:
                continue
            cfg = record.config
            totals[cfg.asset1] = totals.get(cfg.asset1, 0) + record.status.current_amount1
            totals[cfg.asset2] = totals.get(cfg.asset2, 0) + record.status.current_amount2
        return totals

    def pending_bonds(self) -> int:
        """Native creation bonds still held for non-distributed reports."""
        return sum(
            r.config.settler_reward + r.config.reporter_reward
            for r in self._records.values()
            if not r.status.is_distributed
        )

    # ==========================================================================
    # ROLLBACK AND ARCHIVAL
    # ==========================================================================

    @contextmanager
    def isolated(self):
        """Put back every record read or allocated in the block if it raises.

        A nested block joins the enclosing one.
        """
        if self._saved is not None:
            yield self
            return
        self._saved = {}
        next_id = self.next_report_id
        try:
            yield self
        except Exception:
            for report_id, saved in self._saved.items():
                if saved is None:
                    self._records.pop(report_id, None)
                else:
                    self._records[report_id] = saved
            self.next_report_id = next_id
            raise
        finally:
            self._saved = None

    def export(self) -> bytes:
        """Serialize every record for audit or archival."""
        payload = {
            "next_report_id": self.next_report_id,
            "records": {str(rid): rec.to_dict() for rid, rec in self._records.items()},
        }
        return msgpack.packb(stringify_ints(payload), use_bin_type=True)

    @classmethod
    def load(cls, raw: bytes) -> 'ReportRegistry':
        payload = msgpack.unpackb(raw, raw=False)
        registry = cls()
        registry.next_report_id = int(payload["next_report_id"])
        for rid, rec in payload["records"].items():
            registry._records[int(rid)] = ReportRecord.from_dict(rec)
        logger.info(f"Loaded {len(registry)} report records")
        return registry
