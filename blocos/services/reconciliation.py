"""Last-writer-wins reconciliation of local and remote status/override maps.

Pure functions: given the local maps and the owner's remote rows, compute the
merged local maps and the rows that must be pushed to the remote store.
Records are compared only by ``updated_at``; the later side wins whole, there
is no field-by-field merge. Per event the local timestamp is the later of the
status and override timestamps, and likewise on the remote side.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from blocos.models.status import EventStatus
from blocos.schemas.status import (
    EPOCH,
    OverrideMap,
    OverrideRecord,
    OverrideRow,
    StatusMap,
    StatusRecord,
)


class TiePolicy(str, enum.Enum):
    remote = "remote"  # adopt the remote values on equal timestamps
    skip = "skip"      # leave both sides alone on equal timestamps


@dataclass
class MergeResult:
    status_map: StatusMap
    override_map: OverrideMap
    upserts: list[OverrideRow] = field(default_factory=list)
    adopted: list[str] = field(default_factory=list)


def is_newer(a: Optional[datetime], b: Optional[datetime]) -> bool:
    """True when ``a`` is strictly later than ``b``; a missing value is infinitely old."""
    if a is None:
        return False
    if b is None:
        return True
    return a > b


def latest_timestamp(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    if a is None:
        return b
    if b is None:
        return a
    return a if is_newer(a, b) else b


def split_remote_rows(rows: Iterable[OverrideRow]) -> tuple[StatusMap, OverrideMap]:
    """Reshape remote rows into a status map and an override map.

    Every row yields an override record (hidden defaults to False); only rows
    with a status yield a status record. A null updated_at becomes epoch zero.
    """
    status_map: StatusMap = {}
    override_map: OverrideMap = {}
    for row in rows:
        updated_at = row.updated_at or EPOCH
        if row.status:
            status_map[row.base_event_id] = StatusRecord(status=row.status, updated_at=updated_at)
        override_map[row.base_event_id] = OverrideRecord(
            hidden=row.hidden if row.hidden is not None else False,
            notes=row.notes,
            updated_at=updated_at,
        )
    return status_map, override_map


def reconcile(
    owner_id: str,
    local_status: StatusMap,
    local_overrides: OverrideMap,
    remote_rows: Iterable[OverrideRow],
    tie_policy: TiePolicy = TiePolicy.remote,
    status_fallback: Optional[EventStatus] = None,
) -> MergeResult:
    """Merge local maps with the owner's remote rows.

    The inputs are not modified. The result carries new merged maps, the rows
    to upsert remotely and the ids of events whose remote values were adopted.
    """
    remote_status, remote_overrides = split_remote_rows(remote_rows)
    result = MergeResult(status_map=dict(local_status), override_map=dict(local_overrides))

    event_ids = set(local_status) | set(local_overrides) | set(remote_status) | set(remote_overrides)

    for event_id in sorted(event_ids):
        l_status = local_status.get(event_id)
        l_override = local_overrides.get(event_id)
        r_status = remote_status.get(event_id)
        r_override = remote_overrides.get(event_id)

        local_updated_at = latest_timestamp(
            l_status.updated_at if l_status else None,
            l_override.updated_at if l_override else None,
        )
        remote_updated_at = latest_timestamp(
            r_status.updated_at if r_status else None,
            r_override.updated_at if r_override else None,
        )

        if local_updated_at is None and remote_updated_at is None:
            continue

        if remote_updated_at is None:
            result.upserts.append(OverrideRow(
                owner_id=owner_id,
                base_event_id=event_id,
                status=l_status.status if l_status else status_fallback,
                hidden=l_override.hidden if l_override else None,
                notes=l_override.notes if l_override else None,
                updated_at=local_updated_at,
            ))
        elif local_updated_at is None or is_newer(remote_updated_at, local_updated_at):
            _adopt(result, event_id, r_status, r_override)
        elif is_newer(local_updated_at, remote_updated_at):
            status = l_status.status if l_status else (r_status.status if r_status else status_fallback)
            hidden = _first_not_none(
                l_override.hidden if l_override else None,
                r_override.hidden if r_override else None,
                False,
            )
            notes = _first_not_none(
                l_override.notes if l_override else None,
                r_override.notes if r_override else None,
            )
            result.upserts.append(OverrideRow(
                owner_id=owner_id,
                base_event_id=event_id,
                status=status,
                hidden=hidden,
                notes=notes,
                updated_at=local_updated_at,
            ))
        elif tie_policy == TiePolicy.remote and not _same_values(l_status, l_override, r_status, r_override):
            _adopt(result, event_id, r_status, r_override)

    return result


def _adopt(result: MergeResult, event_id: str, r_status, r_override) -> None:
    if r_status is not None:
        result.status_map[event_id] = r_status
    if r_override is not None:
        result.override_map[event_id] = r_override
    result.adopted.append(event_id)


def _same_values(l_status, l_override, r_status, r_override) -> bool:
    """Equal content on both sides; adopting would only rewrite timestamps."""
    if (l_status is None) != (r_status is None):
        return False
    if l_status is not None and l_status.status != r_status.status:
        return False
    if l_override is None:
        return r_override is None or (not r_override.hidden and r_override.notes is None)
    if r_override is None:
        return False
    return bool(l_override.hidden) == bool(r_override.hidden) and l_override.notes == r_override.notes


def _first_not_none(*values):
    for value in values:
        if value is not None:
            return value
    return None
