"""Delete old image tags from a Docker registry."""
