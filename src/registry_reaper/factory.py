"""Component factory."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import closing, contextmanager
from typing import Self

import structlog
from structlog.stdlib import BoundLogger

from .config import RegistryConfig
from .services.reaper import Reaper
from .services.timestamp import TimestampResolver
from .storage.registry import RegistryClient


class Factory:
    """Build reaper components.

    Parameters
    ----------
    config
        Registry configuration.
    logger
        Logger to use for messages.
    """

    @classmethod
    @contextmanager
    def standalone(cls, config: RegistryConfig) -> Iterator[Self]:
        """Context manager for reaper components.

        Parameters
        ----------
        config
            Registry configuration

        Yields
        ------
        Factory
            Newly-created factory; the registry client is closed on exit.
        """
        configure_logging(debug=config.debug)
        logger = structlog.get_logger(__name__)
        with closing(cls(config, logger)) as factory:
            yield factory

    def __init__(self, config: RegistryConfig, logger: BoundLogger) -> None:
        self._config = config
        self._logger = logger
        self._client: RegistryClient | None = None

    def create_registry_client(self) -> RegistryClient:
        """Return the registry client, shared by everything built here."""
        if self._client is None:
            self._client = RegistryClient(self._config)
            self._logger.debug(f"Created client for {self._client.name}")
        return self._client

    def create_timestamp_resolver(self) -> TimestampResolver:
        return TimestampResolver(self.create_registry_client())

    def create_reaper(self) -> Reaper:
        return Reaper(
            self._config,
            storage=self.create_registry_client(),
            resolver=self.create_timestamp_resolver(),
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


def configure_logging(*, debug: bool) -> None:
    """Log at DEBUG if asked to, otherwise at INFO."""
    log_level = logging.DEBUG if debug else logging.INFO
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(log_level)
    )
