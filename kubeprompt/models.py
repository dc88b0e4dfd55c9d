"""Core data models shared across kubeprompt components."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .errors import ExecutionFailure


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class Action(str, Enum):
    """Cluster operation requested by an instruction."""

    APPLY = "apply"
    SHOW = "show"
    DELETE = "delete"


class ParseSource(str, Enum):
    """Which parsing phase produced an intent."""

    MODEL = "model"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class Intent:
    """Structured decision extracted from a free-text instruction."""

    repo_url: str
    branch: str
    action: Action
    filename: Optional[str] = None
    namespace: Optional[str] = None
    dry_run: bool = False
    confidence: float = 0.0
    source: ParseSource = ParseSource.MODEL

    def __post_init__(self) -> None:
        confidence = float(self.confidence)
        clamped = min(max(confidence, 0.0), 1.0) if math.isfinite(confidence) else 0.0
        object.__setattr__(self, "confidence", clamped)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repoUrl": self.repo_url,
            "branch": self.branch,
            "filename": self.filename or "",
            "action": self.action.value,
            "namespace": self.namespace or "",
            "dryRun": self.dry_run,
            "confidence": self.confidence,
            "source": self.source.value,
        }


@dataclass(frozen=True)
class Parsed:
    """Intent decoded from the model's structured answer."""

    intent: Intent


@dataclass(frozen=True)
class Degraded:
    """Intent produced by the keyword fallback after the model path failed."""

    intent: Intent
    reason: str


ParseOutcome = Union[Parsed, Degraded]


@dataclass(frozen=True)
class Workspace:
    """Disposable checkout directory owned by a single retrieval."""

    name: str
    path: Path
    repo_url: str
    branch: str
    created_at: str = field(default_factory=_now)


@dataclass(frozen=True)
class Artifact:
    """A YAML document discovered inside a workspace."""

    path: str
    absolute_path: Path
    content: str
    size: int
    is_manifest: bool

    def to_dict(self, *, include_absolute: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "path": self.path,
            "content": self.content,
            "size": self.size,
            "isKubernetes": self.is_manifest,
        }
        if include_absolute:
            payload["fullPath"] = str(self.absolute_path)
        return payload


@dataclass(frozen=True)
class Outcome:
    """Result of one kubectl invocation for one artifact or identifier."""

    path: str
    succeeded: bool
    output: str
    resources: Tuple[str, ...] = ()
    error: Optional[str] = None

    def raise_for_failure(self) -> None:
        if not self.succeeded:
            raise ExecutionFailure(self.path, self.error or self.output)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filePath": self.path,
            "success": self.succeeded,
            "output": self.output,
            "resources": list(self.resources),
            "error": self.error or "",
        }


def dedupe(items: Iterable[str]) -> List[str]:
    """Drop repeated entries while keeping first-seen order."""
    seen: set[str] = set()
    result: List[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


@dataclass
class AggregateResult:
    """Partial-failure-tolerant summary across every executed artifact."""

    total: int
    succeeded: int
    failed: int
    outcomes: List[Outcome]
    resources: List[str]
    dry_run: bool
    timestamp: str = field(default_factory=_now)

    @classmethod
    def from_outcomes(
        cls, outcomes: Sequence[Outcome], *, dry_run: bool
    ) -> "AggregateResult":
        ordered = list(outcomes)
        succeeded = sum(1 for outcome in ordered if outcome.succeeded)
        resources = dedupe(
            resource
            for outcome in ordered
            if outcome.succeeded
            for resource in outcome.resources
        )
        return cls(
            total=len(ordered),
            succeeded=succeeded,
            failed=len(ordered) - succeeded,
            outcomes=ordered,
            resources=resources,
            dry_run=dry_run,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalFiles": self.total,
            "successFiles": self.succeeded,
            "failedFiles": self.failed,
            "appliedTime": self.timestamp,
            "results": [outcome.to_dict() for outcome in self.outcomes],
            "allResources": list(self.resources),
            "dryRun": self.dry_run,
        }


@dataclass
class FetchResult:
    """Manifests retrieved from a repository without touching the cluster."""

    repo_url: str
    branch: str
    artifacts: List[Artifact]
    retrieved_at: str = field(default_factory=_now)

    @property
    def total(self) -> int:
        return len(self.artifacts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repoUrl": self.repo_url,
            "branch": self.branch,
            "yamlFiles": [artifact.to_dict() for artifact in self.artifacts],
            "totalFiles": self.total,
            "retrievedAt": self.retrieved_at,
        }


@dataclass
class GeneratedManifest:
    """Manifest text written by the model from a plain-language description."""

    prompt: str
    content: str
    valid: bool
    error: Optional[str] = None
    generated_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generatedYaml": self.content,
            "prompt": self.prompt,
            "valid": self.valid,
            "validationError": self.error or "",
            "generatedTime": self.generated_at,
        }


@dataclass
class Analysis:
    """Model commentary on the manifests of a repository."""

    repo_url: str
    branch: str
    action: Action
    files: List[str]
    analysis: str
    analyzed_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repoUrl": self.repo_url,
            "branch": self.branch,
            "action": self.action.value,
            "files": list(self.files),
            "analysis": self.analysis,
            "analyzedTime": self.analyzed_at,
        }


@dataclass
class BackendHealth:
    """Reachability of the text-generation backend."""

    base_url: str
    model: str
    connected: bool
    response_time_ms: float = 0.0
    checked_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseUrl": self.base_url,
            "model": self.model,
            "isConnected": self.connected,
            "responseTimeMs": self.response_time_ms,
            "lastChecked": self.checked_at,
        }


@dataclass
class Answer:
    """Free-form answer to a cluster question."""

    question: str
    answer: str
    context: str
    answered_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "answer": self.answer,
            "context": self.context,
            "answeredTime": self.answered_at,
        }


__all__ = [
    "Action",
    "AggregateResult",
    "Analysis",
    "Answer",
    "Artifact",
    "BackendHealth",
    "Degraded",
    "FetchResult",
    "GeneratedManifest",
    "Intent",
    "Outcome",
    "ParseOutcome",
    "ParseSource",
    "Parsed",
    "Workspace",
    "dedupe",
]
