"""
Archive UI Version Registry.

Every snapshot is tagged with the UI/schema version that renders it. Snapshots
written before tagging existed carry no tag; their version is inferred from
the archive timestamp against the release dates below, so old objects are
never rewritten.

Pure lookup, no I/O.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VersionInfo:
    """A known archive UI version."""

    tag: str
    release_date: date
    name: str
    description: str
    features: tuple[str, ...] = field(default_factory=tuple)


# Newest first. Add new versions at the top and bump CURRENT_VERSION.
ARCHIVE_VERSIONS: tuple[VersionInfo, ...] = (
    VersionInfo(
        tag="2.0",
        release_date=date(2025, 11, 1),
        name="Archive UI v2",
        description="Rosters per team, document links and per-period score display",
        features=("team_rosters", "pdf_links", "period_scores"),
    ),
    VersionInfo(
        tag="1.0",
        release_date=date(2025, 8, 1),
        name="Archive UI v1",
        description="Initial archive layout: schedule, results and standings",
        features=("schedule", "results", "standings"),
    ),
)

CURRENT_VERSION = "2.0"
DEFAULT_VERSION = "1.0"  # Untagged snapshots older than every release

_BY_TAG = {v.tag: v for v in ARCHIVE_VERSIONS}

TimestampInput = Union[datetime, date, str, None]


def get_current_version() -> str:
    """Version tag stamped on new archives."""
    return CURRENT_VERSION


def is_supported(tag: Optional[str]) -> bool:
    return tag in _BY_TAG


def get_version_info(tag: Optional[str]) -> VersionInfo:
    """Info for tag; unknown tags fall back to the default version's info."""
    info = _BY_TAG.get(tag or "")
    if info is None:
        logger.warning(f"[VERSIONS] Unknown archive UI version {tag!r}, using {DEFAULT_VERSION}")
        return _BY_TAG[DEFAULT_VERSION]
    return info


def parse_timestamp(value: TimestampInput) -> Optional[datetime]:
    """Aware UTC datetime, or None when missing/unparseable. Naive values are UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            # Python < 3.11 fromisoformat rejects the Z suffix
            value = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            # SQLite datetime('now') form: "2025-09-01 10:00:00"
            try:
                value = datetime.strptime(text[:19], "%Y-%m-%d %H:%M:%S")
            except ValueError:
                return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return None


def infer_version(
    archived_at: TimestampInput,
    versions: tuple[VersionInfo, ...] = ARCHIVE_VERSIONS,
    default: str = DEFAULT_VERSION,
) -> str:
    """Version that was current when a snapshot was archived.

    Args:
        archived_at: Archive timestamp (datetime, date or ISO string)
        versions: Known versions; any order, sorted newest first here
        default: Tag used when archived_at is missing, unparseable or older
            than every release

    Returns:
        First tag (newest first) whose release date is <= archived_at
    """
    archived = parse_timestamp(archived_at)
    if archived is None:
        return default

    for info in sorted(versions, key=lambda v: v.release_date, reverse=True):
        released = datetime.combine(info.release_date, time.min, tzinfo=timezone.utc)
        if released <= archived:
            return info.tag
    return default


def resolve_version(snapshot: dict[str, Any]) -> str:
    """Explicit tag from snapshot metadata, else inferred from archived_at."""
    metadata = snapshot.get("metadata") or {}
    tag = metadata.get("archive_ui_version") if isinstance(metadata, dict) else None
    if tag and is_supported(tag):
        return tag
    if tag:
        logger.warning(f"[VERSIONS] Snapshot carries unknown tag {tag!r}, inferring from timestamp")
    return infer_version(snapshot.get("archived_at"))
