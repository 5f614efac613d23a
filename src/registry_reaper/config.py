"""Configuration for reaper for a Docker registry."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any, Self

import yaml
from pydantic import (
    BaseModel,
    BeforeValidator,
    Field,
    HttpUrl,
    SecretStr,
)
from safir.pydantic import CamelCaseModel

DEFAULT_REGISTRY_URL = "http://localhost:5000"


def _split_repositories(inp: Any) -> Any:
    # "a, b,,c" -> ["a", "b", "c"]; nothing left means "discover all"
    if isinstance(inp, str):
        inp = inp.split(",")
    if isinstance(inp, list):
        names = [x.strip() for x in inp if isinstance(x, str) and x.strip()]
        return names or None
    return inp


class RegistryAuth(BaseModel):
    """Basic-auth credentials for the registry."""

    username: Annotated[
        str | None,
        Field(
            title="Username",
            description="Username (if any) for authentication.",
            examples=["fbooth"],
        ),
    ] = None

    password: Annotated[
        SecretStr | None,
        Field(
            title="Password",
            description="Password (if any) for authentication.",
            examples=["hunter2"],
        ),
    ] = None

    @property
    def complete(self) -> bool:
        """Whether both halves of the credential are present."""
        if not self.username or self.password is None:
            return False
        return bool(self.password.get_secret_value())


class RegistryConfig(CamelCaseModel):
    """Configuration to talk to, and reap, a Docker registry."""

    url: Annotated[
        HttpUrl,
        Field(
            title="URL",
            description="Root URL of the registry; the v2 API lives below it.",
            examples=[HttpUrl(DEFAULT_REGISTRY_URL)],
        ),
    ] = HttpUrl(DEFAULT_REGISTRY_URL)

    auth: Annotated[
        RegistryAuth | None,
        Field(
            title="Registry Auth",
            description="Authentication details for the registry.",
        ),
    ] = None

    dry_run: Annotated[
        bool,
        Field(
            title="Dry run",
            description="Do not actually delete any images from registry.",
        ),
    ] = True

    repositories: Annotated[
        list[str] | None,
        BeforeValidator(_split_repositories),
        Field(
            title="Repositories",
            description=(
                "Repositories to process.  If unset, every repository in "
                "the registry catalog is processed."
            ),
            examples=[["library/app", "tools/builder"]],
        ),
    ] = None

    delete_untagged: Annotated[
        bool,
        Field(
            title="Delete untagged",
            description="Reserved: also delete untagged manifests.",
        ),
    ] = False

    retention_count: Annotated[
        int,
        Field(
            gt=0,
            title="Retention count",
            description=(
                "Number of most recent images to keep in each repository, "
                "before the newest semantic-version tag is added back."
            ),
            examples=[5],
        ),
    ] = 5

    timeout: Annotated[
        float,
        Field(
            gt=0,
            title="Timeout",
            description="Timeout in seconds for each registry request.",
        ),
    ] = 30.0

    debug: Annotated[
        bool,
        Field(
            title="Debug",
            description="Much more verbose logging.",
        ),
    ] = False

    @property
    def base_url(self) -> str:
        """Registry URL without the trailing slash pydantic adds."""
        return str(self.url).rstrip("/")


class Config(BaseModel):
    """Top-level reaper configuration."""

    registry: Annotated[
        RegistryConfig,
        Field(
            title="Registry",
            description="Registry to be reaped.",
        ),
    ] = Field(default_factory=RegistryConfig)

    @classmethod
    def from_file(cls, path: Path) -> Self:
        return cls.model_validate(yaml.safe_load(path.read_text()) or {})

    @classmethod
    def from_environment(
        cls, environ: Mapping[str, str] | None = None
    ) -> Self:
        """Build configuration from ``REGISTRY_*`` and friends.

        ``DRY_RUN`` is on unless it is literally ``false``;
        ``DELETE_UNTAGGED`` and ``REAPER_DEBUG`` are off unless ``true``.
        """
        env = os.environ if environ is None else environ
        registry: dict[str, Any] = {
            "url": env.get("REGISTRY_URL") or DEFAULT_REGISTRY_URL,
            "dry_run": env.get("DRY_RUN", "").strip().lower() != "false",
            "delete_untagged": (
                env.get("DELETE_UNTAGGED", "").strip().lower() == "true"
            ),
            "debug": env.get("REAPER_DEBUG", "").strip().lower() == "true",
        }
        if env.get("REPOSITORIES"):
            registry["repositories"] = env["REPOSITORIES"]
        if env.get("RETENTION_COUNT"):
            registry["retention_count"] = env["RETENTION_COUNT"].strip()
        user = env.get("REGISTRY_USER")
        password = env.get("REGISTRY_PASS")
        if user or password:
            registry["auth"] = {"username": user, "password": password}
        return cls.model_validate({"registry": registry})
