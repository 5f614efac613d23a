"""Client for the Docker Registry HTTP API v2.

Every read method returns an empty or absent value on failure, having
logged why.  One unreachable blob or one broken manifest should cost us
the timestamp for one tag, not the whole run.
"""

from types import TracebackType
from typing import Any, Self

import httpx
import structlog
from pydantic import ValidationError

from ..config import RegistryAuth, RegistryConfig
from ..models.manifest import ImageConfig, Manifest, Referrers

MANIFEST_MEDIA_TYPES = (
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.oci.image.index.v1+json",
)
OCI_INDEX_MEDIA_TYPE = "application/vnd.oci.image.index.v1+json"
DIGEST_HEADER = "Docker-Content-Digest"

__all__ = ["DIGEST_HEADER", "MANIFEST_MEDIA_TYPES", "RegistryClient"]


class RegistryClient:
    """Typed wrapper over the registry's read and delete operations.

    Reads are never retried; a failed read is "unknown" for the rest of
    the run.  Deletion is the only call with a destructive effect, and in
    dry-run mode it never reaches the network.
    """

    def __init__(self, cfg: RegistryConfig) -> None:
        self._logger = structlog.get_logger(__name__)
        self._url = cfg.base_url
        self._dry_run = cfg.dry_run
        self._repositories = cfg.repositories
        self._http_client = httpx.Client(
            base_url=self._url,
            timeout=cfg.timeout,
            follow_redirects=True,
        )
        self._http_client.headers["accept"] = ", ".join(MANIFEST_MEDIA_TYPES)
        self.name = self._url
        if cfg.auth:
            self.authenticate(cfg.auth)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._http_client.close()

    def authenticate(self, auth: RegistryAuth) -> None:
        """Use HTTP basic auth, but only with both username and password."""
        if not auth.complete or auth.username is None or auth.password is None:
            self._logger.warning(
                "Incomplete registry credentials; proceeding anonymously"
            )
            return
        self._http_client.auth = httpx.BasicAuth(
            auth.username, auth.password.get_secret_value()
        )
        self._logger.debug(f"Using basic auth as '{auth.username}'")

    def _get_json(
        self,
        path: str,
        what: str,
        *,
        accept: str | None = None,
        quiet_statuses: tuple[int, ...] = (),
    ) -> tuple[Any, httpx.Response] | None:
        headers = {"accept": accept} if accept else None
        self._logger.debug(f"GET {path}")
        try:
            r = self._http_client.get(path, headers=headers)
            if r.status_code in quiet_statuses:
                self._logger.debug(f"No {what}: HTTP {r.status_code}")
                return None
            r.raise_for_status()
            return r.json(), r
        except (httpx.HTTPError, ValueError) as exc:
            self._logger.warning(f"Failed to get {what}: {exc}")
            return None

    def _get_paged_list(self, path: str, key: str, what: str) -> list[str]:
        # Registries may paginate with an RFC 5988 Link header.
        results: list[str] = []
        next_page: str | None = path
        while next_page:
            got = self._get_json(next_page, what)
            if got is None:
                return []
            obj, r = got
            if not isinstance(obj, dict):
                self._logger.warning(f"Failed to get {what}: not an object")
                return []
            page = obj.get(key) or []
            results.extend(x for x in page if isinstance(x, str))
            next_page = r.links.get("next", {}).get("url")
        return results

    def probe(self) -> bool:
        """Check that the v2 API root answers."""
        try:
            r = self._http_client.get("/v2/")
        except httpx.HTTPError as exc:
            self._logger.error(f"Failed to connect to registry: {exc}")
            return False
        if not r.is_success:
            self._logger.error(
                f"Registry API check failed: HTTP {r.status_code}"
            )
            return False
        self._logger.debug(f"Registry at {self._url} is reachable")
        return True

    def list_repositories(self) -> list[str]:
        """Return the configured repositories, or else the catalog."""
        if self._repositories:
            self._logger.debug(
                f"Using configured repositories: {self._repositories}"
            )
            return list(self._repositories)
        repos = self._get_paged_list(
            "/v2/_catalog", "repositories", "repository catalog"
        )
        self._logger.debug(f"Found {len(repos)} repositories in catalog")
        return repos

    def list_tags(self, repository: str) -> list[str]:
        return self._get_paged_list(
            f"/v2/{repository}/tags/list", "tags", f"tags for {repository}"
        )

    def head_digest(self, repository: str, reference: str) -> str | None:
        """Get the content digest of a manifest without fetching it."""
        path = f"/v2/{repository}/manifests/{reference}"
        try:
            r = self._http_client.head(path)
            r.raise_for_status()
        except httpx.HTTPError as exc:
            self._logger.warning(
                f"Failed to get digest for {repository}:{reference}: {exc}"
            )
            return None
        digest = r.headers.get(DIGEST_HEADER)
        if not digest:
            self._logger.warning(
                f"No {DIGEST_HEADER} header for {repository}:{reference}"
            )
            return None
        return digest

    def get_manifest(self, repository: str, reference: str) -> Manifest | None:
        got = self._get_json(
            f"/v2/{repository}/manifests/{reference}",
            f"manifest for {repository}:{reference}",
        )
        if got is None:
            return None
        return self._validate(
            Manifest, got[0], f"manifest for {repository}:{reference}"
        )

    def get_blob(self, repository: str, digest: str) -> Any | None:
        """Fetch a blob and decode it as JSON."""
        got = self._get_json(
            f"/v2/{repository}/blobs/{digest}",
            f"blob {repository}@{digest}",
        )
        return None if got is None else got[0]

    def get_config_blob(
        self, repository: str, digest: str
    ) -> ImageConfig | None:
        obj = self.get_blob(repository, digest)
        if obj is None:
            return None
        return self._validate(
            ImageConfig, obj, f"config for {repository}@{digest}"
        )

    def get_referrers(self, repository: str, digest: str) -> Referrers | None:
        """List artifacts attached to a digest.

        Plenty of registries do not implement the referrers API; a 404 is
        expected and only logged at debug level.
        """
        what = f"referrers for {repository}@{digest}"
        got = self._get_json(
            f"/v2/{repository}/referrers/{digest}",
            what,
            accept=OCI_INDEX_MEDIA_TYPE,
            quiet_statuses=(404,),
        )
        if got is None:
            return None
        return self._validate(Referrers, got[0], what)

    def delete_manifest(self, repository: str, digest: str) -> bool:
        """Delete a manifest by digest.

        https://distribution.github.io/distribution/spec/api/#deleting-an-image

        Only ``202 Accepted`` counts as success.
        """
        if self._dry_run:
            self._logger.warning(
                f"[DRY RUN] Would delete: {repository}@{digest}"
            )
            return True
        self._logger.info(f"Deleting manifest: {repository}@{digest}")
        try:
            r = self._http_client.delete(
                f"/v2/{repository}/manifests/{digest}"
            )
        except httpx.HTTPError as exc:
            self._logger.error(
                f"Failed to delete {repository}@{digest}: {exc}"
            )
            return False
        if r.status_code != httpx.codes.ACCEPTED:
            self._logger.error(
                f"Failed to delete {repository}@{digest}: "
                f"HTTP {r.status_code} {r.reason_phrase}"
            )
            return False
        self._logger.info(f"Deleted {repository}@{digest}")
        return True

    def _validate[T: Manifest | ImageConfig | Referrers](
        self, model: type[T], obj: Any, what: str
    ) -> T | None:
        try:
            return model.model_validate(obj)
        except ValidationError as exc:
            self._logger.warning(
                f"Malformed {what}: {exc.error_count()} validation errors"
            )
            return None
