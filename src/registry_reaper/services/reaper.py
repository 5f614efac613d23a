"""Provides reaping services for a Docker registry."""

import structlog
from safir.datetime import format_datetime_for_logging

from ..config import RegistryConfig
from ..exceptions import RegistryUnavailableError
from ..models.tag import RetentionDecision, RunStatistics, TagRecord
from ..storage.registry import RegistryClient
from .retention import plan_retention, sort_by_recency
from .timestamp import TimestampResolver

GC_COMMAND = (
    "docker exec registry registry garbage-collect"
    " /etc/docker/registry/config.yml"
)


def _short(digest: str) -> str:
    return digest[:19] + "..." if len(digest) > 19 else digest


class Reaper:
    """Applies the retention policy to every repository in a registry.

    Each repository goes through the same steps: collect a snapshot of
    its tags (`populate`), decide what to keep (`plan`), and delete the
    rest (`reap`).  The snapshot is complete before any deletion starts.
    """

    def __init__(
        self,
        cfg: RegistryConfig,
        storage: RegistryClient,
        resolver: TimestampResolver,
    ) -> None:
        self._dry_run = cfg.dry_run
        self._retention_count = cfg.retention_count
        self._delete_untagged = cfg.delete_untagged
        self._storage = storage
        self._resolver = resolver
        self.name = storage.name
        self._logger = structlog.get_logger(__name__)

    def run(self) -> RunStatistics:
        """Reap every repository; return totals across all of them.

        Raises
        ------
        RegistryUnavailableError
            The registry did not answer; nothing was touched.
        """
        self._logger.info("=" * 60)
        self._logger.info("Docker Registry Cleanup")
        self._logger.info(f"Registry URL: {self.name}")
        self._logger.info(
            f"Dry run mode: {'ENABLED' if self._dry_run else 'DISABLED'}"
        )
        self._logger.info(f"Retention count: {self._retention_count}")
        self._logger.info("=" * 60)
        if self._delete_untagged:
            self._logger.warning(
                "delete_untagged is reserved and currently has no effect"
            )

        if not self._storage.probe():
            raise RegistryUnavailableError(self.name)

        totals = RunStatistics()
        repositories = self._storage.list_repositories()
        if not repositories:
            self._logger.warning("No repositories found")
            return totals
        self._logger.info(f"Found {len(repositories)} repositories")

        for repository in repositories:
            totals += self.process_repository(repository)
            self._logger.info("-" * 60)

        self._summarize(totals)
        return totals

    def process_repository(self, repository: str) -> RunStatistics:
        self._logger.info(f"Processing repository: {repository}")
        records = self.populate(repository)
        if not records:
            self._logger.warning(
                f"No resolvable tags in repository: {repository}"
            )
            return RunStatistics()
        decision = self.plan(records)
        self.report(repository, records, decision)
        deleted = self.reap(repository, decision)
        return RunStatistics(deleted=deleted, kept=len(decision.keep))

    def populate(self, repository: str) -> list[TagRecord]:
        """Resolve digest and creation time for every tag.

        Tags whose digest cannot be resolved are left out entirely: we
        cannot delete them, and we cannot tell what they alias.
        """
        tags = self._storage.list_tags(repository)
        if not tags:
            self._logger.warning(f"No tags found in repository: {repository}")
            return []
        records: list[TagRecord] = []
        for tag in tags:
            digest = self._storage.head_digest(repository, tag)
            if digest is None:
                self._logger.warning(
                    f"Skipping {repository}:{tag}: digest unavailable"
                )
                continue
            created = self._resolver.resolve(repository, tag, digest)
            records.append(TagRecord(name=tag, digest=digest, created=created))
        self._logger.debug(
            f"Resolved {len(records)} of {len(tags)} tags in {repository}"
        )
        return records

    def plan(self, records: list[TagRecord]) -> RetentionDecision:
        return plan_retention(records, self._retention_count)

    def report(
        self,
        repository: str,
        records: list[TagRecord],
        decision: RetentionDecision,
    ) -> None:
        """Log what the plan keeps and what it deletes."""
        newest = sort_by_recency(records)[0]
        created = format_datetime_for_logging(newest.created) or "unknown"
        self._logger.info(f"Latest tag: {newest.name} (created: {created})")
        for digest in sorted(decision.keep):
            tags = ", ".join(decision.tags_for(digest))
            self._logger.info(f"Keeping: {_short(digest)} (tags: {tags})")
        for digest in sorted(decision.delete):
            tags = ", ".join(decision.tags_for(digest))
            self._logger.info(
                f"Marking for deletion: {_short(digest)} (tags: {tags})"
            )
        if decision.delete:
            self._logger.info(
                f"{repository}: keeping {len(decision.keep)} digests, "
                f"deleting {len(decision.delete)} "
                f"({len(decision.deleted_tags)} tags)"
            )

    def reap(self, repository: str, decision: RetentionDecision) -> int:
        """Delete every digest the plan gives up; return how many went."""
        deleted = 0
        for digest in sorted(decision.delete):
            if self._storage.delete_manifest(repository, digest):
                deleted += 1
        failed = len(decision.delete) - deleted
        if failed:
            self._logger.error(
                f"{failed} of {len(decision.delete)} deletions failed "
                f"in {repository}"
            )
        return deleted

    def _summarize(self, totals: RunStatistics) -> None:
        dry = " (not really)" if self._dry_run else ""
        self._logger.info("=" * 60)
        self._logger.info("Cleanup completed")
        self._logger.info(f"Total manifests deleted: {totals.deleted}{dry}")
        self._logger.info(f"Total manifests kept: {totals.kept}")
        if self._dry_run:
            self._logger.warning(
                "This was a dry run. Set DRY_RUN=false to actually delete "
                "manifests."
            )
        if self._dry_run or totals.deleted:
            self._logger.warning(
                "Registry garbage collection must be run after deletion to "
                f"reclaim disk space: {GC_COMMAND}"
            )
