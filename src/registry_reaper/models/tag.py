"""Model for the things about a repository tag the reaper cares about."""

import datetime
from dataclasses import dataclass, field
from typing import Self

import semver

type DigestGroups = dict[str, set[str]]

__all__ = [
    "DigestGroups",
    "RetentionDecision",
    "RunStatistics",
    "TagRecord",
    "group_by_digest",
    "parse_semver_tag",
    "parse_timestamp",
]


def parse_semver_tag(name: str) -> semver.Version | None:
    """Interpret a tag name as a semantic version.

    A single leading ``v`` is allowed (``v1.2.3``); the rest must be a
    full semver 2.0.0 string, so ``1.2`` and ``latest`` do not qualify.
    """
    try:
        return semver.Version.parse(name.removeprefix("v"))
    except (ValueError, TypeError):
        return None


def parse_timestamp(value: object) -> datetime.datetime | None:
    """Turn an ISO 8601 timestamp string into an aware UTC datetime.

    Registries hand these out with a ``Z`` suffix and nanosecond precision;
    labels written by hand may carry an offset or be a bare date.  Naive
    results are assumed to be UTC.  Anything that is not a parseable string
    yields `None`.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=datetime.UTC)
    return parsed.astimezone(datetime.UTC)


@dataclass
class TagRecord:
    """One tag in a repository, with the digest it points to.

    Several tags may share a digest; the registry can only delete by
    digest, so those tags live or die together.
    """

    name: str
    digest: str
    created: datetime.datetime | None = None
    version: semver.Version | None = field(init=False, default=None)

    def __post_init__(self) -> None:
        self.version = parse_semver_tag(self.name)

    @property
    def is_semver(self) -> bool:
        return self.version is not None

    def __str__(self) -> str:
        colon_pos = self.digest.find(":")
        dig = self.digest[1 + colon_pos :] if colon_pos > -1 else self.digest
        if len(dig) > 12:
            dig = dig[:12] + "..."
        return f"[{self.name}] <{dig}>"


def group_by_digest(records: list[TagRecord]) -> DigestGroups:
    """Map each digest to the names of every tag pointing at it."""
    groups: DigestGroups = {}
    for rec in records:
        groups.setdefault(rec.digest, set()).add(rec.name)
    return groups


@dataclass
class RetentionDecision:
    """Partition of a repository's digests into those kept and deleted."""

    keep: set[str] = field(default_factory=set)
    delete: set[str] = field(default_factory=set)
    groups: DigestGroups = field(default_factory=dict)

    def tags_for(self, digest: str) -> list[str]:
        return sorted(self.groups.get(digest, set()))

    @property
    def kept_tags(self) -> set[str]:
        return {t for d in self.keep for t in self.groups.get(d, set())}

    @property
    def deleted_tags(self) -> set[str]:
        return {t for d in self.delete for t in self.groups.get(d, set())}


@dataclass
class RunStatistics:
    """Counts of digests deleted and kept; summed across repositories."""

    deleted: int = 0
    kept: int = 0

    def __add__(self, other: object) -> Self:
        if not isinstance(other, RunStatistics):
            return NotImplemented
        return type(self)(
            deleted=self.deleted + other.deleted, kept=self.kept + other.kept
        )
