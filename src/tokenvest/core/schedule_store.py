"""
Keyed schedule table owned by a vesting ledger.

The store is the entirety of a ledger's durable state: a mapping from
beneficiary address to that beneficiary's schedules in insertion order, and
the aggregate amount the ledger is still liable for.
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterator, List


@dataclass
class VestingSchedule:
    beneficiary: str
    start: int
    cliff: int
    duration: int
    total: int
    slice_interval: int = 1
    released: int = 0
    revocable: bool = True
    revoked: bool = False
    index: int = 0
    created_at: int = 0

    @property
    def end(self) -> int:
        return self.start + self.duration

    @property
    def outstanding(self) -> int:
        """Amount still owed under this schedule, zero once revoked."""
        if self.revoked:
            return 0
        return self.total - self.released

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VestingSchedule":
        return cls(
            beneficiary=data["beneficiary"],
            start=int(data["start"]),
            cliff=int(data["cliff"]),
            duration=int(data["duration"]),
            total=int(data["total"]),
            slice_interval=int(data.get("slice_interval", 1)),
            released=int(data.get("released", 0)),
            revocable=bool(data.get("revocable", True)),
            revoked=bool(data.get("revoked", False)),
            index=int(data.get("index", 0)),
            created_at=int(data.get("created_at", 0)),
        )


class ScheduleStore:
    def __init__(self) -> None:
        # {beneficiary: [VestingSchedule, ...]}; list position is the schedule index
        self.schedules: Dict[str, List[VestingSchedule]] = {}
        self.total_allocated = 0

    def append(self, schedule: VestingSchedule) -> int:
        """Add a schedule at the end of its beneficiary's sequence and return its index."""
        sequence = self.schedules.setdefault(schedule.beneficiary, [])
        schedule.index = len(sequence)
        sequence.append(schedule)
        self.total_allocated += schedule.total
        return schedule.index

    def get(self, beneficiary: str, index: int) -> VestingSchedule | None:
        sequence = self.schedules.get(beneficiary, [])
        if index < 0 or index >= len(sequence):
            return None
        return sequence[index]

    def count(self, beneficiary: str) -> int:
        return len(self.schedules.get(beneficiary, []))

    def beneficiaries(self) -> List[str]:
        return list(self.schedules)

    def __iter__(self) -> Iterator[VestingSchedule]:
        for sequence in self.schedules.values():
            yield from sequence

    def __len__(self) -> int:
        return sum(len(sequence) for sequence in self.schedules.values())

    def outstanding_total(self) -> int:
        """Recompute the liability from the schedules themselves."""
        return sum(schedule.outstanding for schedule in self)

    def sequence(self, beneficiary: str) -> List[VestingSchedule]:
        """Copies of a beneficiary's schedules in index order."""
        return [copy.copy(schedule) for schedule in self.schedules.get(beneficiary, [])]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schedules": {
                beneficiary: [schedule.to_dict() for schedule in sequence]
                for beneficiary, sequence in self.schedules.items()
            },
            "total_allocated": self.total_allocated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduleStore":
        store = cls()
        for beneficiary, sequence in data.get("schedules", {}).items():
            store.schedules[beneficiary] = [
                VestingSchedule.from_dict(entry) for entry in sequence
            ]
        store.total_allocated = int(data.get("total_allocated", 0))
        return store
