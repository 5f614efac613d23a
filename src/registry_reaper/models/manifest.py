"""Registry documents: manifests, image configs, and referrer lists.

Only the fields the reaper reads are modelled; everything else in the
documents is ignored.
"""

from typing import Annotated, Any

from pydantic import BeforeValidator, Field
from safir.pydantic import CamelCaseModel

OCI_CREATED_ANNOTATION = "org.opencontainers.image.created"

__all__ = [
    "OCI_CREATED_ANNOTATION",
    "ContainerConfig",
    "Descriptor",
    "HistoryEntry",
    "ImageConfig",
    "Manifest",
    "Referrers",
]


def _objects_only(inp: Any) -> Any:
    # Drop list entries that cannot be a document, rather than rejecting
    # the whole document for one bad entry.
    if isinstance(inp, list):
        return [x for x in inp if isinstance(x, dict)]
    return inp


class Descriptor(CamelCaseModel):
    """OCI content descriptor pointing at a blob or manifest."""

    digest: str

    media_type: str | None = None

    artifact_type: str | None = None

    size: int | None = None

    annotations: dict[str, Any] | None = None


class HistoryEntry(CamelCaseModel):
    """Legacy schema 1 history entry, holding a JSON-encoded v1 image."""

    v1_compatibility: Annotated[Any, Field(alias="v1Compatibility")] = None


class Manifest(CamelCaseModel):
    """A single-platform image manifest.

    Modern manifests (Docker schema 2, OCI) reference a config blob;
    legacy schema 1 manifests carry ``history`` instead.  An index has
    neither.
    """

    schema_version: int | None = None

    media_type: str | None = None

    config: Descriptor | None = None

    layers: Annotated[
        list[Descriptor], BeforeValidator(_objects_only)
    ] = Field(default_factory=list)

    history: Annotated[
        list[HistoryEntry], BeforeValidator(_objects_only)
    ] = Field(default_factory=list)

    annotations: dict[str, Any] | None = None


class ContainerConfig(CamelCaseModel):
    """Runtime section of an image config; only the labels matter here."""

    labels: Annotated[dict[str, Any] | None, Field(alias="Labels")] = None


class ImageConfig(CamelCaseModel):
    """Image config blob."""

    created: str | None = None

    config: ContainerConfig | None = None

    @property
    def labels(self) -> dict[str, Any]:
        if self.config is None or self.config.labels is None:
            return {}
        return self.config.labels


class Referrers(CamelCaseModel):
    """Response of the OCI referrers API: an index of attached artifacts."""

    media_type: str | None = None

    manifests: Annotated[
        list[Descriptor], BeforeValidator(_objects_only)
    ] = Field(default_factory=list)
