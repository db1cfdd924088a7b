"""Leader lock data models."""

import copy
import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .exceptions import LeaderLockError, MalformedRecordError, ValidationError

_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_time(value: datetime) -> str:
    """Render a timestamp as RFC 3339 UTC with microseconds."""
    return _to_utc(value).strftime(_TIME_FORMAT)


def parse_time(raw: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime."""
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return _to_utc(datetime.fromisoformat(text))


class FailureKind(str, Enum):
    """Why a lock write did not go through."""
    NOT_CACHED = "not_cached"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    VERSION_CONFLICT = "version_conflict"
    TRANSPORT = "transport"


@dataclass
class LeaderElectionRecord:
    """Who holds leadership of a lock object, and since when.

    The zero value (no arguments) means the object has no leader yet.
    Timestamps are normalized to aware UTC datetimes; naive values are
    taken to already be in UTC.
    """
    holder_identity: str = ""
    lease_duration_seconds: int = 0
    acquire_time: Optional[datetime] = None
    renew_time: Optional[datetime] = None
    leader_transitions: int = 0

    def __post_init__(self):
        if self.lease_duration_seconds < 0:
            raise ValidationError("Lease duration must not be negative")
        if self.leader_transitions < 0:
            raise ValidationError("Leader transitions must not be negative")
        self.acquire_time = _to_utc(self.acquire_time)
        self.renew_time = _to_utc(self.renew_time)
        if (
            self.holder_identity
            and self.acquire_time is not None
            and self.renew_time is not None
            and self.renew_time < self.acquire_time
        ):
            raise ValidationError("Renew time must not be earlier than acquire time")

    @property
    def is_held(self) -> bool:
        """Whether some candidate currently claims leadership."""
        return bool(self.holder_identity)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the lease has lapsed as of ``now``.

        An unheld record, or one that was never renewed, counts as expired.
        """
        if not self.is_held or self.renew_time is None:
            return True
        now = _to_utc(now) if now else datetime.now(timezone.utc)
        return self.renew_time + timedelta(seconds=self.lease_duration_seconds) <= now

    def next_for(
        self,
        identity: str,
        lease_duration_seconds: int,
        now: Optional[datetime] = None,
    ) -> "LeaderElectionRecord":
        """Build the record ``identity`` should write after observing this one.

        Renewing keeps the acquire time and transition count. Taking over
        from another holder starts a new acquire time and bumps the
        transition count.
        """
        now = _to_utc(now) if now else datetime.now(timezone.utc)
        if self.holder_identity == identity:
            return LeaderElectionRecord(
                holder_identity=identity,
                lease_duration_seconds=lease_duration_seconds,
                acquire_time=self.acquire_time or now,
                renew_time=now,
                leader_transitions=self.leader_transitions,
            )

        transitions = self.leader_transitions
        if self.is_held:
            transitions += 1
        return LeaderElectionRecord(
            holder_identity=identity,
            lease_duration_seconds=lease_duration_seconds,
            acquire_time=now,
            renew_time=now,
            leader_transitions=transitions,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation, omitting unset timestamps."""
        data: Dict[str, Any] = {
            "holderIdentity": self.holder_identity,
            "leaseDurationSeconds": self.lease_duration_seconds,
        }
        if self.acquire_time is not None:
            data["acquireTime"] = format_time(self.acquire_time)
        if self.renew_time is not None:
            data["renewTime"] = format_time(self.renew_time)
        data["leaderTransitions"] = self.leader_transitions
        return data

    def to_annotation(self) -> str:
        """Serialize to the compact JSON stored in the leader annotation."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_annotation(cls, raw: Optional[str]) -> "LeaderElectionRecord":
        """Deserialize an annotation value.

        A missing or blank value yields the zero record. Anything else
        that cannot be read raises MalformedRecordError.
        """
        if raw is None or not raw.strip():
            return cls()

        try:
            data = json.loads(raw)
        except ValueError as e:
            raise MalformedRecordError(f"Leader annotation is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise MalformedRecordError("Leader annotation must be a JSON object")

        try:
            return cls(
                holder_identity=_str_field(data, "holderIdentity"),
                lease_duration_seconds=_int_field(data, "leaseDurationSeconds"),
                acquire_time=_time_field(data, "acquireTime"),
                renew_time=_time_field(data, "renewTime"),
                leader_transitions=_int_field(data, "leaderTransitions"),
            )
        except (TypeError, ValueError, LeaderLockError) as e:
            raise MalformedRecordError(f"Leader annotation has invalid fields: {e}")


def _str_field(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string")
    return value


def _int_field(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{key} must be an integer")
    return value


def _time_field(data: Dict[str, Any], key: str) -> Optional[datetime]:
    value = data.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a timestamp string")
    return parse_time(value)


@dataclass
class RemoteObject:
    """A namespaced object held by the store, as last observed.

    ``raw`` is the full object body the store returned. Writes send it back
    with only the annotations and version changed, so fields the lock does
    not own (labels, finalizers, payload) survive an update.
    """
    namespace: str
    name: str
    resource_version: Optional[str] = None
    annotations: Dict[str, str] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)

    def annotation(self, key: str) -> Optional[str]:
        return self.annotations.get(key)

    def with_annotation(self, key: str, value: str) -> "RemoteObject":
        """Return a copy with one annotation set; this object is unchanged."""
        annotations = dict(self.annotations)
        annotations[key] = value
        return replace(self, annotations=annotations, raw=copy.deepcopy(self.raw))


@dataclass
class WriteResult:
    """Outcome of a lock write, truthy only when the write went through."""
    ok: bool
    kind: Optional[FailureKind] = None
    error: Optional[Exception] = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls) -> "WriteResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, kind: FailureKind, error: Optional[Exception] = None) -> "WriteResult":
        return cls(ok=False, kind=kind, error=error)
