"""
Vesting ledger: time-released token grants held in custody.

The ledger owns every vesting schedule, validates grants at creation,
computes releasable amounts as a pure function of schedule state and time,
and moves tokens out of its custody on release, revocation and withdrawal.

Every state-changing call commits ledger state before it asks the token to
move funds. A token that calls back into the ledger during a transfer
therefore observes the updated schedule and cannot release the same amount
twice. If the token rejects the transfer, the call's own mutations are
undone before TransferFailed is raised, except for funds that already
reached a recipient, which stay recorded as paid.
"""

from __future__ import annotations

import copy
import hashlib
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Tuple

from .config import LedgerPolicy
from .contracts.erc20 import ZERO_ADDRESS, AssetTransfer, TokenError
from .schedule_store import ScheduleStore, VestingSchedule
from .vesting_exceptions import (
    InsufficientFunds,
    InvalidAmount,
    InvalidBeneficiary,
    InvalidDuration,
    InvalidIndex,
    InvalidSchedule,
    InvalidSliceInterval,
    InvalidStart,
    ManagedAssetRecovery,
    NothingToRelease,
    NotRevocable,
    ScheduleRevoked,
    TransferFailed,
    Unauthorized,
)

logger = logging.getLogger(__name__)

STORAGE_KEY = "vesting_ledger"

SCHEDULE_CREATED = "VestingScheduleCreated"
TOKENS_RELEASED = "TokensReleased"
SCHEDULE_REVOKED = "VestingScheduleRevoked"
TOKENS_WITHDRAWN = "TokensWithdrawn"
TOKENS_RECOVERED = "TokensRecovered"
OWNERSHIP_TRANSFERRED = "OwnershipTransferred"


@dataclass
class VestingEvent:
    """Record emitted for external auditing of ledger activity."""

    event_type: str
    beneficiary: str
    index: int | None
    amount: int
    timestamp: int
    data: Dict[str, Any] = field(default_factory=dict)


def _normalize(address: str | None) -> str:
    return (address or "").strip().lower()


def _is_null(address: str) -> bool:
    return not address or address == ZERO_ADDRESS


class VestingLedger:
    """
    Ledger of vesting schedules for a single token.

    Args:
        token: Asset collaborator exposing transfer(to, amount) and balance_of(holder)
        owner: Address holding the creator/owner role
        address: Custody address of the ledger on the token. Defaults to the
            collaborator's ``holder`` when it has one.
        store: Schedule table; a fresh one is created when omitted
        policy: Behavioral switches (see LedgerPolicy)
        time_provider: Callable returning the current UNIX time in seconds
        treasury: Recipient of revocation refunds, the owner when omitted
    """

    def __init__(
        self,
        token: AssetTransfer,
        owner: str,
        *,
        address: str | None = None,
        store: ScheduleStore | None = None,
        policy: LedgerPolicy | None = None,
        time_provider: Callable[[], int] | None = None,
        treasury: str | None = None,
    ):
        owner_norm = _normalize(owner)
        if _is_null(owner_norm):
            raise InvalidBeneficiary("Ledger owner cannot be the zero address.")

        self.token = token
        self.owner = owner_norm
        self.address = _normalize(address or getattr(token, "holder", None)) or self.derive_address(owner_norm)
        self.store = store if store is not None else ScheduleStore()
        self.policy = policy or LedgerPolicy()
        self._treasury = _normalize(treasury) or None
        self.events: List[VestingEvent] = []
        self._time_provider = time_provider or (lambda: int(time.time()))
        logger.info(
            "Vesting ledger initialized",
            extra={
                "event": "vesting.ledger_initialized",
                "address": self.address[:10],
                "owner": self.owner[:10],
                "schedules": len(self.store),
                "deterministic_time": bool(time_provider),
            }
        )

    @staticmethod
    def derive_address(owner: str, salt: str = "") -> str:
        digest = hashlib.sha3_256(f"vesting:{owner}:{salt}".encode()).digest()
        return f"0x{digest[-20:].hex()}"

    @property
    def treasury(self) -> str:
        return self._treasury or self.owner

    @property
    def total_allocated(self) -> int:
        return self.store.total_allocated

    def _current_time(self, current_time: int | None = None) -> int:
        timestamp = self._time_provider() if current_time is None else current_time
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise ValueError(f"Timestamps must be integer seconds, got {timestamp!r}")
        return timestamp

    def now(self) -> int:
        """Current ledger time according to the time provider."""
        return self._current_time()

    # ==================== Authorization ====================

    def is_owner(self, caller: str) -> bool:
        return _normalize(caller) == self.owner

    def _require_owner(self, caller: str, action: str) -> None:
        if not self.is_owner(caller):
            raise Unauthorized(
                f"Caller {caller} is not allowed to {action}; owner role required.",
                details={"caller": _normalize(caller), "action": action},
            )

    # ==================== Schedule creation ====================

    def create_schedule(
        self,
        creator: str,
        beneficiary: str,
        start: int,
        cliff: int,
        duration: int,
        total: int,
        revocable: bool = True,
        slice_interval: int = 1,
        current_time: int | None = None,
    ) -> int:
        """
        Grant ``total`` tokens to ``beneficiary``, vesting linearly from
        ``start`` over ``duration`` seconds with nothing releasable before
        ``cliff``.

        Returns:
            Index of the new schedule in the beneficiary's sequence.

        Raises:
            Unauthorized: creator is not the owner
            InvalidBeneficiary: beneficiary is the null identity
            InvalidDuration: duration is not positive
            InvalidAmount: total is not positive
            InvalidSchedule: cliff precedes start
            InvalidSliceInterval: slice_interval below one second
            InvalidStart: start is in the past and policy forbids it
            InsufficientFunds: custody cannot cover the grant
        """
        self._require_owner(creator, "create vesting schedules")

        beneficiary_norm = _normalize(beneficiary)
        if _is_null(beneficiary_norm):
            raise InvalidBeneficiary("Beneficiary cannot be the zero address.")
        if duration <= 0:
            raise InvalidDuration(f"Duration must be positive, got {duration}.")
        if total <= 0:
            raise InvalidAmount(f"Total amount must be positive, got {total}.")
        if cliff < start:
            raise InvalidSchedule(
                f"Cliff {cliff} cannot precede start {start}.",
                details={"start": start, "cliff": cliff},
            )
        if slice_interval < 1:
            raise InvalidSliceInterval(f"Slice interval must be at least 1 second, got {slice_interval}.")

        now = self._current_time(current_time)
        if not self.policy.allow_past_start and start < now:
            raise InvalidStart(
                f"Start {start} is before current time {now}.",
                details={"start": start, "now": now},
            )

        if self.policy.require_funding:
            available = self.withdrawable_amount()
            if available < total:
                raise InsufficientFunds(
                    f"Custody can cover {available} more tokens, grant needs {total}.",
                    details={"available": available, "required": total},
                )

        schedule = VestingSchedule(
            beneficiary=beneficiary_norm,
            start=int(start),
            cliff=int(cliff),
            duration=int(duration),
            total=int(total),
            slice_interval=int(slice_interval),
            revocable=bool(revocable),
            created_at=now,
        )
        index = self.store.append(schedule)

        self._emit(
            SCHEDULE_CREATED,
            beneficiary_norm,
            index,
            schedule.total,
            now,
            total=schedule.total,
            cliff=schedule.cliff,
            start=schedule.start,
            duration=schedule.duration,
        )
        logger.info(
            "Vesting schedule created",
            extra={
                "event": "vesting.schedule_created",
                "beneficiary": beneficiary_norm[:10],
                "index": index,
                "total": schedule.total,
                "start": schedule.start,
                "cliff": schedule.cliff,
                "duration": schedule.duration,
                "revocable": schedule.revocable,
            }
        )
        return index

    # ==================== Queries ====================

    def _schedule(self, beneficiary: str, index: int) -> VestingSchedule:
        beneficiary_norm = _normalize(beneficiary)
        schedule = self.store.get(beneficiary_norm, index)
        if schedule is None:
            raise InvalidIndex(
                f"No vesting schedule {index} for {beneficiary_norm}.",
                beneficiary=beneficiary_norm,
                index=index,
            )
        return schedule

    @staticmethod
    def _releasable(schedule: VestingSchedule, now: int) -> int:
        """Vested but unreleased amount of ``schedule`` at ``now``."""
        if now < schedule.cliff:
            return 0
        if now >= schedule.end:
            return schedule.total - schedule.released

        elapsed = now - schedule.start
        elapsed -= elapsed % schedule.slice_interval
        vested = schedule.total * elapsed // schedule.duration
        # A clock reading earlier than a previous release cannot claw back
        return max(0, vested - schedule.released)

    def vested_amount(self, beneficiary: str, index: int, current_time: int | None = None) -> int:
        """
        Amount of the schedule that has vested and is not yet released.

        Raises:
            InvalidIndex: no such schedule
            ScheduleRevoked: the schedule has been revoked
        """
        schedule = self._schedule(beneficiary, index)
        if schedule.revoked:
            raise ScheduleRevoked(f"Vesting schedule {index} for {schedule.beneficiary} is revoked.")
        return self._releasable(schedule, self._current_time(current_time))

    releasable_amount = vested_amount

    def schedule_count(self, beneficiary: str) -> int:
        return self.store.count(_normalize(beneficiary))

    def get_schedule(self, beneficiary: str, index: int) -> VestingSchedule:
        """Return a copy of a schedule; mutating it does not touch the ledger."""
        return copy.copy(self._schedule(beneficiary, index))

    def get_schedules(self, beneficiary: str) -> List[VestingSchedule]:
        return self.store.sequence(_normalize(beneficiary))

    def beneficiaries(self) -> List[str]:
        return self.store.beneficiaries()

    def custody_balance(self) -> int:
        return self.token.balance_of(self.address)

    def withdrawable_amount(self) -> int:
        """Custody balance not claimed by outstanding schedules."""
        return max(0, self.custody_balance() - self.store.total_allocated)

    def accounting_report(self) -> Dict[str, Any]:
        """Compare the allocation counter with the schedules and custody."""
        outstanding = self.store.outstanding_total()
        custody = self.custody_balance()
        bounds_ok = all(0 <= s.released <= s.total for s in self.store)
        return {
            "total_allocated": self.store.total_allocated,
            "outstanding": outstanding,
            "custody_balance": custody,
            "withdrawable": max(0, custody - self.store.total_allocated),
            "consistent": bounds_ok
            and outstanding == self.store.total_allocated
            and custody >= self.store.total_allocated,
        }

    # ==================== Release & revocation ====================

    def release(self, caller: str, beneficiary: str, index: int, current_time: int | None = None) -> int:
        """
        Pay out the vested, unreleased amount of a schedule to its beneficiary.

        Returns:
            Amount released.

        Raises:
            InvalidIndex, Unauthorized, ScheduleRevoked, NothingToRelease,
            TransferFailed
        """
        schedule = self._schedule(beneficiary, index)
        caller_norm = _normalize(caller)
        owner_allowed = self.policy.owner_can_release and caller_norm == self.owner
        if caller_norm != schedule.beneficiary and not owner_allowed:
            raise Unauthorized(
                f"Caller {caller} cannot release schedule {index} of {schedule.beneficiary}.",
                details={"caller": caller_norm, "beneficiary": schedule.beneficiary},
            )
        if schedule.revoked:
            raise ScheduleRevoked(f"Vesting schedule {index} for {schedule.beneficiary} is revoked.")

        now = self._current_time(current_time)
        amount = self._releasable(schedule, now)
        if amount <= 0:
            raise NothingToRelease(
                f"Nothing vested to release for schedule {index} of {schedule.beneficiary}.",
                details={"now": now, "cliff": schedule.cliff},
            )

        schedule.released += amount
        self.store.total_allocated -= amount
        try:
            self._transfer(schedule.beneficiary, amount)
        except Exception:
            schedule.released -= amount
            self.store.total_allocated += amount
            logger.warning(
                "Release rolled back",
                extra={
                    "event": "vesting.release_rolled_back",
                    "beneficiary": schedule.beneficiary[:10],
                    "index": index,
                    "amount": amount,
                }
            )
            raise

        self._emit(TOKENS_RELEASED, schedule.beneficiary, index, amount, now)
        logger.info(
            "Vested tokens released",
            extra={
                "event": "vesting.released",
                "beneficiary": schedule.beneficiary[:10],
                "index": index,
                "amount": amount,
                "released_total": schedule.released,
            }
        )
        return amount

    def revoke(
        self, caller: str, beneficiary: str, index: int, current_time: int | None = None
    ) -> Tuple[int, int]:
        """
        Terminate a revocable schedule.

        The slice vested so far is paid to the beneficiary and the part that
        would never vest is refunded to the treasury. If the refund transfer
        fails after the beneficiary was paid, the schedule stays active with
        that payout recorded as a release, and revoking again refunds the rest.

        Returns:
            (released_now, refund), summing to total - released before the call.

        Raises:
            InvalidIndex, Unauthorized, ScheduleRevoked, NotRevocable,
            TransferFailed
        """
        schedule = self._schedule(beneficiary, index)
        self._require_owner(caller, "revoke vesting schedules")
        if schedule.revoked:
            raise ScheduleRevoked(f"Vesting schedule {index} for {schedule.beneficiary} is already revoked.")
        if not schedule.revocable:
            raise NotRevocable(f"Vesting schedule {index} for {schedule.beneficiary} is not revocable.")

        now = self._current_time(current_time)
        released_now = self._releasable(schedule, now)
        refund = schedule.total - schedule.released - released_now
        settlement = released_now + refund

        custody = self.custody_balance()
        if custody < settlement:
            raise TransferFailed(
                f"Custody holds {custody}, revocation must move {settlement}.",
                amount=settlement,
                details={"custody": custody, "required": settlement},
            )

        schedule.revoked = True
        schedule.released += released_now
        self.store.total_allocated -= settlement
        paid = 0
        try:
            if released_now > 0:
                self._transfer(schedule.beneficiary, released_now)
                paid = released_now
            if refund > 0:
                self._transfer(self.treasury, refund)
        except Exception:
            # A payout that already reached the beneficiary stays booked as released
            schedule.revoked = False
            schedule.released -= released_now - paid
            self.store.total_allocated += settlement - paid
            if paid:
                self._emit(TOKENS_RELEASED, schedule.beneficiary, index, paid, now)
            logger.warning(
                "Revocation rolled back",
                extra={
                    "event": "vesting.revoke_rolled_back",
                    "beneficiary": schedule.beneficiary[:10],
                    "index": index,
                    "released_kept": paid,
                }
            )
            raise

        if released_now > 0:
            self._emit(TOKENS_RELEASED, schedule.beneficiary, index, released_now, now)
        self._emit(
            SCHEDULE_REVOKED,
            schedule.beneficiary,
            index,
            refund,
            now,
            refund=refund,
            released_now=released_now,
        )
        logger.warning(
            "Vesting schedule revoked",
            extra={
                "event": "vesting.revoked",
                "beneficiary": schedule.beneficiary[:10],
                "index": index,
                "released_now": released_now,
                "refund": refund,
                "treasury": self.treasury[:10],
            }
        )
        return released_now, refund

    # ==================== Owner custody operations ====================

    def withdraw(self, caller: str, amount: int, to: str | None = None, current_time: int | None = None) -> int:
        """Move custody tokens that no schedule claims out of the ledger."""
        self._require_owner(caller, "withdraw")
        if amount <= 0:
            raise InvalidAmount(f"Withdrawal amount must be positive, got {amount}.")
        available = self.withdrawable_amount()
        if amount > available:
            raise InsufficientFunds(
                f"Only {available} tokens are unallocated, requested {amount}.",
                details={"available": available, "requested": amount},
            )

        now = self._current_time(current_time)
        recipient = _normalize(to) or self.owner
        self._transfer(recipient, amount)

        self._emit(TOKENS_WITHDRAWN, recipient, None, amount, now)
        logger.info(
            "Unallocated tokens withdrawn",
            extra={"event": "vesting.withdrawn", "to": recipient[:10], "amount": amount}
        )
        return amount

    def recover_asset(
        self,
        caller: str,
        asset: AssetTransfer,
        amount: int,
        to: str | None = None,
        current_time: int | None = None,
    ) -> int:
        """
        Return a foreign asset mistakenly sent to the ledger's custody.

        The managed token is refused: its custody balance backs outstanding
        schedules and leaves only through release, revocation or withdraw.
        """
        self._require_owner(caller, "recover assets")
        if self._is_managed_asset(asset):
            raise ManagedAssetRecovery("Cannot recover the ledger's managed token.")
        if amount <= 0:
            raise InvalidAmount(f"Recovery amount must be positive, got {amount}.")

        now = self._current_time(current_time)
        recipient = _normalize(to) or self.owner
        self._transfer(recipient, amount, asset=asset)

        asset_address = getattr(asset, "address", "")
        self._emit(TOKENS_RECOVERED, recipient, None, amount, now, asset=asset_address)
        logger.warning(
            "Foreign asset recovered from custody",
            extra={
                "event": "vesting.asset_recovered",
                "asset": str(asset_address)[:10],
                "to": recipient[:10],
                "amount": amount,
            }
        )
        return amount

    def _is_managed_asset(self, asset: AssetTransfer) -> bool:
        if asset is self.token:
            return True
        managed = getattr(self.token, "address", None)
        return bool(managed) and _normalize(getattr(asset, "address", None)) == _normalize(managed)

    def transfer_ownership(self, caller: str, new_owner: str, current_time: int | None = None) -> None:
        self._require_owner(caller, "transfer ownership")
        new_owner_norm = _normalize(new_owner)
        if _is_null(new_owner_norm):
            raise InvalidBeneficiary("New owner cannot be the zero address.")

        now = self._current_time(current_time)
        previous = self.owner
        self.owner = new_owner_norm
        self._emit(
            OWNERSHIP_TRANSFERRED,
            new_owner_norm,
            None,
            0,
            now,
            previous_owner=previous,
        )
        logger.warning(
            "Ledger ownership transferred",
            extra={"event": "vesting.ownership_transferred", "from": previous[:10], "to": new_owner_norm[:10]}
        )

    # ==================== Helpers ====================

    def _transfer(self, to: str, amount: int, asset: AssetTransfer | None = None) -> None:
        asset = asset if asset is not None else self.token
        try:
            ok = asset.transfer(to, amount)
        except TokenError as exc:
            raise TransferFailed(
                f"Transfer of {amount} to {to} failed: {exc}",
                recipient=to,
                amount=amount,
            ) from exc
        if not ok:
            raise TransferFailed(f"Transfer of {amount} to {to} was rejected.", recipient=to, amount=amount)

    def _emit(
        self,
        event_type: str,
        beneficiary: str,
        index: int | None,
        amount: int,
        timestamp: int,
        **data: Any,
    ) -> None:
        self.events.append(
            VestingEvent(
                event_type=event_type,
                beneficiary=beneficiary,
                index=index,
                amount=amount,
                timestamp=timestamp,
                data=data,
            )
        )

    # ==================== Persistence ====================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "owner": self.owner,
            "treasury": self._treasury,
            "policy": asdict(self.policy),
            "store": self.store.to_dict(),
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        token: AssetTransfer,
        *,
        policy: LedgerPolicy | None = None,
        time_provider: Callable[[], int] | None = None,
    ) -> "VestingLedger":
        return cls(
            token,
            data["owner"],
            address=data.get("address"),
            store=ScheduleStore.from_dict(data.get("store", {})),
            policy=policy or LedgerPolicy(**data.get("policy", {})),
            time_provider=time_provider,
            treasury=data.get("treasury"),
        )

    def save(self, storage, key: str = STORAGE_KEY) -> None:
        """Persist schedules and the allocation counter through a StorageManager."""
        storage.set(key, self.to_dict())

    @classmethod
    def load(
        cls,
        storage,
        token: AssetTransfer,
        key: str = STORAGE_KEY,
        **kwargs: Any,
    ) -> "VestingLedger | None":
        data = storage.get(key)
        if data is None:
            return None
        return cls.from_dict(data, token, **kwargs)
