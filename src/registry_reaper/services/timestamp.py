"""Work out when the image behind a tag was created.

There is no single place a registry records this.  We try, in order:

1. the ``created`` field of the image config blob;
2. the ``org.opencontainers.image.created`` label in that config;
3. the ``created`` field of the first legacy (schema 1) history entry;
4. the build start time of an attached SLSA provenance attestation,
   found through the OCI referrers API.

The first source that yields a parseable timestamp wins.  The source
functions below are pure: give them the same documents and they give the
same answer.
"""

import base64
import binascii
import datetime
import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog
from safir.datetime import format_datetime_for_logging

from ..models.manifest import (
    OCI_CREATED_ANNOTATION,
    Descriptor,
    ImageConfig,
    Manifest,
)
from ..models.tag import parse_timestamp
from ..storage.registry import RegistryClient

ATTESTATION_MARKERS = ("intoto", "provenance", "attestation")

type _Source = Callable[["_TagDocuments"], datetime.datetime | None]

__all__ = [
    "ATTESTATION_MARKERS",
    "TimestampResolver",
    "build_started_from_attestation",
    "created_from_config",
    "created_from_history",
    "created_from_labels",
    "find_attestation",
]


def created_from_config(
    config: ImageConfig | None,
) -> datetime.datetime | None:
    if config is None:
        return None
    return parse_timestamp(config.created)


def created_from_labels(
    config: ImageConfig | None,
) -> datetime.datetime | None:
    if config is None:
        return None
    return parse_timestamp(config.labels.get(OCI_CREATED_ANNOTATION))


def created_from_history(
    manifest: Manifest | None,
) -> datetime.datetime | None:
    """Read ``created`` out of the first v1-compatibility history entry."""
    if manifest is None or not manifest.history:
        return None
    raw = manifest.history[0].v1_compatibility
    if not isinstance(raw, str):
        return None
    try:
        v1 = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(v1, dict):
        return None
    return parse_timestamp(v1.get("created"))


def _is_attestation(desc: Descriptor) -> bool:
    for kind in (desc.artifact_type, desc.media_type):
        # application/vnd.in-toto+json must count as "intoto"
        flat = (kind or "").lower().replace("-", "")
        if any(m in flat for m in ATTESTATION_MARKERS):
            return True
    return False


def find_attestation(descriptors: list[Descriptor]) -> Descriptor | None:
    """Pick the first attached artifact that looks like provenance."""
    return next((d for d in descriptors if _is_attestation(d)), None)


def _dig(obj: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _unwrap_envelope(doc: Any) -> Any:
    # DSSE envelopes carry the in-toto statement base64-encoded in
    # "payload".
    payload = _dig(doc, "payload")
    if not isinstance(payload, str) or "predicate" in doc:
        return doc
    try:
        return json.loads(base64.b64decode(payload, validate=True))
    except (binascii.Error, ValueError):
        return None


def build_started_from_attestation(doc: Any) -> datetime.datetime | None:
    """Read the build start time from an in-toto SLSA statement.

    SLSA v1.0 puts it at ``predicate.runDetails.metadata.startedOn``;
    v0.2 at ``predicate.metadata.buildStartedOn``.
    """
    statement = _unwrap_envelope(doc)
    started = parse_timestamp(
        _dig(statement, "predicate", "runDetails", "metadata", "startedOn")
    )
    if started is not None:
        return started
    return parse_timestamp(
        _dig(statement, "predicate", "metadata", "buildStartedOn")
    )


@dataclass
class _TagDocuments:
    """Documents fetched for one tag, each at most once."""

    repository: str
    tag: str
    digest: str | None
    manifest: Manifest | None = None
    config: ImageConfig | None = None


class TimestampResolver:
    """Resolve a creation timestamp for a tag from whatever the registry
    will tell us.  Every failure along the way just means "try the next
    source"; nothing here raises.
    """

    def __init__(self, client: RegistryClient) -> None:
        self._client = client
        self._logger = structlog.get_logger(__name__)

    def resolve(
        self, repository: str, tag: str, digest: str | None = None
    ) -> datetime.datetime | None:
        docs = _TagDocuments(repository=repository, tag=tag, digest=digest)
        docs.manifest = self._client.get_manifest(repository, tag)
        if docs.manifest is not None and docs.manifest.config is not None:
            docs.config = self._client.get_config_blob(
                repository, docs.manifest.config.digest
            )
        sources: list[tuple[str, _Source]] = [
            ("config", lambda d: created_from_config(d.config)),
            ("label", lambda d: created_from_labels(d.config)),
            ("history", lambda d: created_from_history(d.manifest)),
            ("attestation", self._from_attestation),
        ]
        for name, source in sources:
            created = source(docs)
            if created is not None:
                self._logger.debug(
                    f"{repository}:{tag} created "
                    f"{format_datetime_for_logging(created)} (from {name})"
                )
                return created
        self._logger.debug(f"No creation time found for {repository}:{tag}")
        return None

    def _from_attestation(
        self, docs: _TagDocuments
    ) -> datetime.datetime | None:
        digest = docs.digest or self._client.head_digest(
            docs.repository, docs.tag
        )
        if digest is None:
            return None
        referrers = self._client.get_referrers(docs.repository, digest)
        if referrers is None:
            return None
        desc = find_attestation(referrers.manifests)
        if desc is None:
            return None
        blob = self._client.get_blob(docs.repository, desc.digest)
        return build_started_from_attestation(
            self._follow_layers(docs.repository, blob)
        )

    def _follow_layers(self, repository: str, blob: Any) -> Any:
        # Attestations are usually pushed as an image manifest whose layer
        # holds the statement; step down to that layer if so.
        layers = _dig(blob, "layers")
        if not isinstance(layers, list) or not layers:
            return blob
        try:
            descs = [Descriptor.model_validate(x) for x in layers]
        except ValueError:
            return None
        layer = find_attestation(descs) or descs[0]
        return self._client.get_blob(repository, layer.digest)
