"""
tokenvest - Token Vesting Ledger

Tracks time-released token grants ("vesting schedules") owed to
beneficiaries and disburses them from custody as they vest.

Main Components:
- VestingLedger: schedule creation, vested-amount computation, release and revocation
- ERC20Token / TokenCustody: in-process fungible asset collaborator
- ConfigManager: ledger policy and runtime configuration
- CLI: `tokenvest` command for operating a persisted ledger
"""

__version__ = "0.1.0"
__author__ = "tokenvest developers"

from .core.vesting_ledger import VestingEvent, VestingLedger
from .core.schedule_store import ScheduleStore, VestingSchedule

__all__ = ["VestingLedger", "VestingEvent", "VestingSchedule", "ScheduleStore"]
