"""Test fixtures for registry image reaper."""

import hashlib
import json
from collections.abc import Iterator
from typing import Any

import httpx
import pytest
import respx
from pydantic import HttpUrl

from registry_reaper.config import RegistryConfig
from registry_reaper.factory import Factory
from registry_reaper.services.reaper import Reaper
from registry_reaper.services.timestamp import TimestampResolver
from registry_reaper.storage.registry import DIGEST_HEADER, RegistryClient

REGISTRY_URL = "https://registry.example.com"

CONFIG_MEDIA_TYPE = "application/vnd.oci.image.config.v1+json"
MANIFEST_MEDIA_TYPE = "application/vnd.oci.image.manifest.v1+json"
INTOTO_MEDIA_TYPE = "application/vnd.in-toto+json"


def make_digest(seed: str) -> str:
    """Deterministic, realistic-looking sha256 digest."""
    return "sha256:" + hashlib.sha256(seed.encode()).hexdigest()


class FakeRegistry:
    """A v2 registry made of respx routes.

    Images are added with `add_image`; the catalog and tag lists are
    answered from whatever has been added so far.
    """

    def __init__(self, router: respx.MockRouter) -> None:
        self.router = router
        self.tags: dict[str, list[str]] = {}
        self.deletes: dict[str, respx.Route] = {}
        self.probe = router.get("/v2/").respond(200, json={})
        router.get("/v2/_catalog").mock(side_effect=self._catalog)

    def _catalog(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"repositories": list(self.tags)})

    def _tag_list(self, repository: str) -> Any:
        def respond(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"name": repository, "tags": self.tags[repository]}
            )

        return respond

    def add_repository(self, repository: str) -> None:
        if repository in self.tags:
            return
        self.tags[repository] = []
        self.router.get(f"/v2/{repository}/tags/list").mock(
            side_effect=self._tag_list(repository)
        )

    def add_image(
        self,
        repository: str,
        digest: str,
        *,
        tags: list[str],
        created: str | None = None,
        labels: dict[str, str] | None = None,
        history: list[dict[str, Any]] | None = None,
        attestation: Any = None,
    ) -> None:
        """Publish one image under one or more tags.

        With ``history`` the manifest is a legacy schema 1 manifest and
        there is no config blob.
        """
        self.add_repository(repository)
        manifest: dict[str, Any]
        if history is not None:
            manifest = {
                "schemaVersion": 1,
                "history": [
                    {"v1Compatibility": json.dumps(h)} for h in history
                ],
            }
        else:
            config_digest = make_digest(f"config-{digest}")
            manifest = {
                "schemaVersion": 2,
                "mediaType": MANIFEST_MEDIA_TYPE,
                "config": {
                    "mediaType": CONFIG_MEDIA_TYPE,
                    "digest": config_digest,
                    "size": 1234,
                },
                "layers": [],
            }
            config: dict[str, Any] = {"architecture": "amd64", "os": "linux"}
            if created is not None:
                config["created"] = created
            if labels is not None:
                config["config"] = {"Labels": labels}
            self.router.get(f"/v2/{repository}/blobs/{config_digest}").respond(
                200, json=config
            )
        for tag in tags:
            self.tags[repository].append(tag)
            self.router.head(f"/v2/{repository}/manifests/{tag}").respond(
                200, headers={DIGEST_HEADER: digest}
            )
            self.router.get(f"/v2/{repository}/manifests/{tag}").respond(
                200, json=manifest
            )
        referrers = f"/v2/{repository}/referrers/{digest}"
        if attestation is None:
            self.router.get(referrers).respond(404)
        else:
            att_digest = make_digest(f"attestation-{digest}")
            self.router.get(referrers).respond(
                200,
                json={
                    "schemaVersion": 2,
                    "mediaType": "application/vnd.oci.image.index.v1+json",
                    "manifests": [
                        {
                            "mediaType": MANIFEST_MEDIA_TYPE,
                            "digest": att_digest,
                            "size": 567,
                            "artifactType": INTOTO_MEDIA_TYPE,
                        }
                    ],
                },
            )
            self.router.get(f"/v2/{repository}/blobs/{att_digest}").respond(
                200, json=attestation
            )
        self.deletes[digest] = self.router.delete(
            f"/v2/{repository}/manifests/{digest}"
        ).respond(202)

    def add_broken_tag(self, repository: str, tag: str) -> None:
        """A tag that is listed but whose manifest cannot be found."""
        self.add_repository(repository)
        self.tags[repository].append(tag)
        self.router.head(f"/v2/{repository}/manifests/{tag}").respond(404)

    @property
    def deleted(self) -> set[str]:
        return {dig for dig, route in self.deletes.items() if route.called}


@pytest.fixture
def registry_cfg() -> RegistryConfig:
    """Config for a registry that really deletes."""
    return RegistryConfig(
        url=HttpUrl(REGISTRY_URL),
        dry_run=False,
        retention_count=2,
        debug=True,
    )


@pytest.fixture
def fake_registry() -> Iterator[FakeRegistry]:
    with respx.mock(base_url=REGISTRY_URL, assert_all_called=False) as router:
        yield FakeRegistry(router)


@pytest.fixture
def factory(registry_cfg: RegistryConfig) -> Iterator[Factory]:
    with Factory.standalone(registry_cfg) as factory:
        yield factory


@pytest.fixture
def registry_client(factory: Factory) -> RegistryClient:
    return factory.create_registry_client()


@pytest.fixture
def resolver(factory: Factory) -> TimestampResolver:
    return factory.create_timestamp_resolver()


@pytest.fixture
def reaper(factory: Factory) -> Reaper:
    return factory.create_reaper()
