"""Repository retrieval for the manifest pipeline."""

from .store import ArtifactStore, repo_name

__all__ = ["ArtifactStore", "repo_name"]
