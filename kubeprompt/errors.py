"""Error taxonomy for the manifest pipeline."""

from __future__ import annotations


class KubePromptError(RuntimeError):
    """Base class for failures surfaced by the pipeline."""


class AmbiguousIntentError(KubePromptError):
    """Raised when no repository can be resolved from an instruction."""


class RetrievalError(KubePromptError):
    """Raised when a repository snapshot cannot be fetched."""


class NotFoundError(KubePromptError, FileNotFoundError):
    """Raised when a requested file is absent from the workspace."""


class LLMError(KubePromptError):
    """Raised when the text-generation backend fails or answers garbage."""


class ExecutionFailure(KubePromptError):
    """A kubectl invocation exited non-zero.

    The executor records failures on the outcome instead of raising; callers
    that need an exception use ``Outcome.raise_for_failure``.
    """

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(f"{path}: {detail}")
        self.path = path
        self.detail = detail


__all__ = [
    "AmbiguousIntentError",
    "ExecutionFailure",
    "KubePromptError",
    "LLMError",
    "NotFoundError",
    "RetrievalError",
]
