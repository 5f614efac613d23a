"""Decide which digests in a repository to keep and which to delete.

Nothing in here talks to the registry; it only looks at `TagRecord`s.
"""

import datetime

from ..models.tag import RetentionDecision, TagRecord, group_by_digest

__all__ = ["plan_retention", "sort_by_recency"]


def sort_by_recency(records: list[TagRecord]) -> list[TagRecord]:
    """Order records newest first, with undated records at the end.

    Ties (same timestamp, or both undated) are broken by tag name so the
    result does not depend on the order the registry listed tags in.
    """
    by_name = sorted(records, key=lambda r: r.name)
    dated = [r for r in by_name if r.created is not None]
    undated = [r for r in by_name if r.created is None]
    # Stable sort, so name order survives within equal timestamps
    dated.sort(key=_created, reverse=True)
    return dated + undated


def _created(record: TagRecord) -> datetime.datetime:
    if record.created is None:
        raise ValueError(f"{record} has no creation time")
    return record.created


def plan_retention(
    records: list[TagRecord], retention_count: int
) -> RetentionDecision:
    """Partition the digests behind ``records`` into keep and delete.

    The newest ``retention_count`` distinct digests are kept.  If no tag
    on the kept digests is a semantic-version tag, the newest
    semver-tagged record on some other digest is kept as well, so a
    repository that has any semver release never loses all of them.
    Note that this is the most recently built one, not the highest
    version.

    Deletion happens by digest: every tag sharing a deleted digest goes
    with it, ``latest`` and release tags included.

    Parameters
    ----------
    records
        Every resolvable tag in one repository.
    retention_count
        How many of the most recent images to keep; must be positive.

    Returns
    -------
    RetentionDecision
        Disjoint ``keep`` and ``delete`` digest sets covering every
        digest in ``records``.
    """
    if retention_count < 1:
        raise ValueError(
            f"retention_count must be positive, not {retention_count}"
        )
    ordered = sort_by_recency(records)
    # The window counts images, not tags: aliases of an image already
    # kept do not use up a slot.
    keep: set[str] = set()
    for rec in ordered:
        if len(keep) == retention_count:
            break
        keep.add(rec.digest)

    # An alias of a kept digest survives too, so it counts as kept here.
    if not any(r.is_semver for r in ordered if r.digest in keep):
        newest_semver = next(
            (r for r in ordered if r.is_semver and r.digest not in keep),
            None,
        )
        if newest_semver is not None:
            keep.add(newest_semver.digest)

    groups = group_by_digest(records)
    delete = {dig for dig in groups if dig not in keep}
    return RetentionDecision(keep=keep, delete=delete, groups=groups)
