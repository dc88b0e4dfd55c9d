"""Cluster-side execution through kubectl."""

from .executor import MutationExecutor, extract_resources

__all__ = ["MutationExecutor", "extract_resources"]
