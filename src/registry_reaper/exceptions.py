"""Exceptions for the registry reaper."""

__all__ = ["RegistryUnavailableError"]


class RegistryUnavailableError(Exception):
    """The registry API did not answer the initial liveness check.

    Nothing has been read or deleted when this is raised.
    """

    def __init__(self, url: str) -> None:
        super().__init__(f"Failed to connect to registry API at {url}")
        self.url = url
