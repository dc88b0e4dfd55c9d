"""Pipeline coordination: instruction -> intent -> manifests -> kubectl -> result."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .deadline import UNKNOWN, call_with_deadline
from .errors import AmbiguousIntentError, KubePromptError, LLMError, NotFoundError
from .git.store import ArtifactStore
from .intent.constants import (
    ANALYZE_APPLY_SYSTEM_PROMPT,
    ANALYZE_MAX_FILES,
    ANALYZE_MAX_TOKENS,
    ANALYZE_PREVIEW_LINES,
    ANALYZE_SHOW_SYSTEM_PROMPT,
    ANALYZE_TEMPERATURE,
    GENERATE_MAX_TOKENS,
    GENERATE_SYSTEM_PROMPT,
    GENERATE_TEMPERATURE,
    GENERATE_USER_TEMPLATE,
    QUERY_MAX_TOKENS,
    QUERY_SYSTEM_PROMPT,
    QUERY_TEMPERATURE,
)
from .intent.parser import IntentParser, detect_delete_intent, normalize_repo_url
from .kube.executor import MutationExecutor
from .llm.runner import LLMRunner
from .logging import get_logger
from .manifests import clean_manifest, validate_manifest
from .models import (
    Action,
    AggregateResult,
    Analysis,
    Answer,
    Artifact,
    BackendHealth,
    Degraded,
    FetchResult,
    GeneratedManifest,
    Intent,
    Outcome,
    Workspace,
)


GENERATED_PATH = "generated.yaml"


def summarize_artifacts(artifacts: List[Artifact]) -> str:
    """Describe fetched manifests compactly enough for an analysis prompt.

    At most ``ANALYZE_MAX_FILES`` files are listed, and only the first one is
    previewed.
    """
    lines = [f"Repository contains {len(artifacts)} Kubernetes manifest(s):"]
    for artifact in artifacts[:ANALYZE_MAX_FILES]:
        lines.append(f"- {artifact.path} ({artifact.size} bytes)")
    hidden = len(artifacts) - ANALYZE_MAX_FILES
    if hidden > 0:
        lines.append(f"... and {hidden} more file(s)")
    if artifacts:
        preview = artifacts[0].content.splitlines()[:ANALYZE_PREVIEW_LINES]
        lines.append("")
        lines.append(f"First lines of {artifacts[0].path}:")
        lines.extend(preview)
    return "\n".join(lines)


class PipelineState(str, Enum):
    """Stages a single request moves through."""

    IDLE = "idle"
    PARSING_INTENT = "parsing_intent"
    FETCHING_ARTIFACTS = "fetching_artifacts"
    EXECUTING_ARTIFACTS = "executing_artifacts"
    AGGREGATING = "aggregating"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class PipelineResult:
    """Outcome of a natural-language request."""

    intent: Optional[Intent]
    action: Action
    message: str
    state: PipelineState
    fetch: Optional[FetchResult] = None
    result: Optional[AggregateResult] = None
    degraded_reason: Optional[str] = None
    targets: List[str] = field(default_factory=list)
    generated: Optional[GeneratedManifest] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "action": self.action.value,
            "state": self.state.value,
            "parsedRequest": self.intent.to_dict() if self.intent else None,
            "degradedReason": self.degraded_reason,
            "targets": list(self.targets),
            "fetchResult": self.fetch.to_dict() if self.fetch else None,
            "applyResult": self.result.to_dict() if self.result else None,
            "generated": self.generated.to_dict() if self.generated else None,
        }


class PipelineCoordinator:
    """Coordinates intent parsing, retrieval and execution for one request at a time."""

    def __init__(
        self,
        store: ArtifactStore | None = None,
        executor: MutationExecutor | None = None,
        parser: IntentParser | None = None,
        llm_runner: LLMRunner | None = None,
        *,
        context_timeout: float = 3.0,
    ) -> None:
        self.store = store or ArtifactStore()
        self.executor = executor or MutationExecutor()
        self.llm_runner = llm_runner
        self.parser = parser or IntentParser(llm_runner)
        self.context_timeout = context_timeout
        self.logger = get_logger("orchestrator")
        self.history: List[PipelineState] = [PipelineState.IDLE]

    @property
    def state(self) -> PipelineState:
        return self.history[-1]

    # ------------------------------------------------------------------
    # Natural language entrypoint

    def run(self, instruction: str) -> PipelineResult:
        """Resolve ``instruction`` and carry out the requested action."""
        self._reset()
        if detect_delete_intent(instruction):
            self.logger.info("Delete instruction detected: %s", instruction)
            return self._run_delete(instruction)

        self._enter(PipelineState.PARSING_INTENT)
        try:
            outcome = self.parser.resolve_outcome(instruction)
        except KubePromptError:
            self._enter(PipelineState.ABORTED)
            raise
        intent = outcome.intent
        degraded_reason = outcome.reason if isinstance(outcome, Degraded) else None

        if intent.action is Action.SHOW:
            fetch = self._fetch(intent.repo_url, intent.branch, intent.filename)
            self._enter(PipelineState.DONE)
            return PipelineResult(
                intent=intent,
                action=intent.action,
                message=f"Retrieved {fetch.total} manifest(s)",
                state=self.state,
                fetch=fetch,
                degraded_reason=degraded_reason,
            )

        result = self._apply(
            intent.repo_url,
            intent.branch,
            intent.filename,
            namespace=intent.namespace,
            dry_run=intent.dry_run,
            action=intent.action,
        )
        verb = "dry-run" if intent.dry_run else intent.action.value
        return PipelineResult(
            intent=intent,
            action=intent.action,
            message=f"{verb} finished: {result.succeeded}/{result.total} succeeded",
            state=self.state,
            result=result,
            degraded_reason=degraded_reason,
        )

    # ------------------------------------------------------------------
    # Structured entrypoints

    def fetch(
        self,
        repo_url: str,
        branch: str | None = None,
        filename: str | None = None,
        *,
        include_all: bool = False,
    ) -> FetchResult:
        """Retrieve manifests without touching the cluster.

        With ``include_all`` every YAML file is listed, each flagged with
        whether it classified as a Kubernetes manifest.
        """
        self._reset()
        result = self._fetch(self._checked_url(repo_url), branch, filename, include_all=include_all)
        self._enter(PipelineState.DONE)
        return result

    def apply(
        self,
        repo_url: str,
        branch: str | None = None,
        filename: str | None = None,
        *,
        namespace: str | None = None,
        dry_run: bool = False,
        action: Action = Action.APPLY,
    ) -> AggregateResult:
        """Retrieve manifests and run ``action`` for each of them."""
        self._reset()
        return self._apply(
            self._checked_url(repo_url),
            branch,
            filename,
            namespace=namespace,
            dry_run=dry_run,
            action=action,
        )

    def generate(self, prompt: str) -> GeneratedManifest:
        """Have the model write a manifest for ``prompt``.

        The text is cleaned of fences and leading prose and checked with a YAML
        loader. A manifest that fails the check is still returned, flagged
        ``valid=False``; kubectl has the final word when it is applied.
        """
        runner = self._require_runner()
        raw = runner.run(
            GENERATE_USER_TEMPLATE.format(prompt=prompt),
            system=GENERATE_SYSTEM_PROMPT,
            temperature=GENERATE_TEMPERATURE,
            max_tokens=GENERATE_MAX_TOKENS,
        )
        content = clean_manifest(raw)
        error = validate_manifest(content)
        if error:
            self.logger.warning("Generated manifest did not validate: %s", error)
        else:
            self.logger.info("Generated manifest (%d bytes)", len(content.encode("utf-8")))
        return GeneratedManifest(prompt=prompt, content=content, valid=error is None, error=error)

    def generate_and_apply(
        self,
        prompt: str,
        *,
        namespace: str | None = None,
        dry_run: bool = False,
    ) -> PipelineResult:
        """Generate a manifest for ``prompt`` and apply it.

        Deletion requests skip generation and go through the identifier path.
        """
        self._reset()
        if detect_delete_intent(prompt):
            self.logger.info("Delete instruction detected: %s", prompt)
            return self._run_delete(prompt, namespace=namespace, dry_run=dry_run or None)

        self._enter(PipelineState.PARSING_INTENT)
        try:
            generated = self.generate(prompt)
            if not generated.content:
                raise LLMError("The model did not return a manifest")
        except KubePromptError:
            self._enter(PipelineState.ABORTED)
            raise

        self._enter(PipelineState.EXECUTING_ARTIFACTS)
        artifact = Artifact(
            path=GENERATED_PATH,
            absolute_path=Path(GENERATED_PATH),
            content=generated.content,
            size=len(generated.content.encode("utf-8")),
            is_manifest=self.store.classifier.is_candidate(generated.content),
        )
        outcomes = self._execute_all([artifact], namespace, dry_run, Action.APPLY)
        result = self._aggregate(outcomes, dry_run)
        verb = "dry-run" if dry_run else "apply"
        return PipelineResult(
            intent=None,
            action=Action.APPLY,
            message=f"{verb} of generated manifest finished: {result.succeeded}/{result.total} succeeded",
            state=self.state,
            result=result,
            generated=generated,
        )

    def analyze(
        self,
        repo_url: str,
        branch: str | None = None,
        action: Action = Action.SHOW,
    ) -> Analysis:
        """Ask the model to review a repository's manifests before ``action``."""
        runner = self._require_runner()
        fetched = self.fetch(repo_url, branch)
        if not fetched.artifacts:
            raise NotFoundError(f"No Kubernetes manifests to analyze in {fetched.repo_url}")
        system = ANALYZE_APPLY_SYSTEM_PROMPT if action is Action.APPLY else ANALYZE_SHOW_SYSTEM_PROMPT
        analysis = runner.run(
            summarize_artifacts(fetched.artifacts),
            system=system,
            temperature=ANALYZE_TEMPERATURE,
            max_tokens=ANALYZE_MAX_TOKENS,
        )
        return Analysis(
            repo_url=fetched.repo_url,
            branch=fetched.branch,
            action=action,
            files=[artifact.path for artifact in fetched.artifacts],
            analysis=analysis.strip(),
        )

    def ask(self, question: str) -> Answer:
        """Answer a free-form cluster question, enriched with the current context."""
        runner = self._require_runner()
        context = call_with_deadline(
            lambda: self.executor.current_context() or "default",
            self.context_timeout,
            UNKNOWN,
            label="current-context lookup",
        )
        answer = runner.run(
            question,
            system=QUERY_SYSTEM_PROMPT.format(context=context),
            temperature=QUERY_TEMPERATURE,
            max_tokens=QUERY_MAX_TOKENS,
        )
        return Answer(question=question, answer=answer.strip(), context=context)

    def backend_health(self) -> BackendHealth:
        """Report whether the text-generation backend answers, and how fast."""
        if self.llm_runner is None:
            return BackendHealth(base_url="", model="", connected=False)
        started = time.monotonic()
        connected = self.llm_runner.check_health()
        elapsed_ms = round((time.monotonic() - started) * 1000, 1)
        return BackendHealth(
            base_url=self.llm_runner.base_url,
            model=self.llm_runner.model,
            connected=connected,
            response_time_ms=elapsed_ms,
        )

    def purge(self) -> bool:
        """Remove every workspace under the store root."""
        return self.store.purge_all()

    # ------------------------------------------------------------------
    # Stages

    def _fetch(
        self,
        repo_url: str,
        branch: str | None,
        filename: str | None,
        *,
        include_all: bool = False,
    ) -> FetchResult:
        self._enter(PipelineState.FETCHING_ARTIFACTS)
        try:
            with self.store.workspace(repo_url, branch) as workspace:
                artifacts = self._collect(workspace, filename, include_all=include_all)
        except KubePromptError:
            self._enter(PipelineState.ABORTED)
            raise
        return FetchResult(repo_url=repo_url, branch=workspace.branch, artifacts=artifacts)

    def _apply(
        self,
        repo_url: str,
        branch: str | None,
        filename: str | None,
        *,
        namespace: str | None,
        dry_run: bool,
        action: Action,
    ) -> AggregateResult:
        self._enter(PipelineState.FETCHING_ARTIFACTS)
        try:
            with self.store.workspace(repo_url, branch) as workspace:
                artifacts = self._collect(workspace, filename)
                self._enter(PipelineState.EXECUTING_ARTIFACTS)
                outcomes = self._execute_all(artifacts, namespace, dry_run, action)
        except KubePromptError:
            self._enter(PipelineState.ABORTED)
            raise
        return self._aggregate(outcomes, dry_run)

    def _run_delete(
        self,
        instruction: str,
        *,
        namespace: str | None = None,
        dry_run: bool | None = None,
    ) -> PipelineResult:
        self._enter(PipelineState.PARSING_INTENT)
        try:
            targets = self.parser.parse_delete_targets(instruction)
        except KubePromptError:
            self._enter(PipelineState.ABORTED)
            raise
        if dry_run is None:
            dry_run = self.parser.fallback(instruction).dry_run

        self._enter(PipelineState.EXECUTING_ARTIFACTS)
        outcomes = []
        for identifier in targets:
            self.logger.info("Deleting %s", identifier)
            outcomes.append(self.executor.delete_resource(identifier, namespace=namespace, dry_run=dry_run))
        result = self._aggregate(outcomes, dry_run)
        return PipelineResult(
            intent=None,
            action=Action.DELETE,
            message=f"delete finished: {result.succeeded}/{result.total} succeeded",
            state=self.state,
            result=result,
            targets=targets,
        )

    def _collect(
        self,
        workspace: Workspace,
        filename: str | None,
        *,
        include_all: bool = False,
    ) -> List[Artifact]:
        if filename:
            return [self.store.locate(workspace, filename)]
        return self.store.discover(workspace, include_all=include_all)

    def _execute_all(
        self,
        artifacts: List[Artifact],
        namespace: str | None,
        dry_run: bool,
        action: Action,
    ) -> List[Outcome]:
        outcomes: List[Outcome] = []
        for artifact in artifacts:
            self.logger.info("Executing %s for %s", action.value, artifact.path)
            outcome = self.executor.execute(artifact, namespace=namespace, dry_run=dry_run, action=action)
            if not outcome.succeeded:
                self.logger.warning("%s failed: %s", artifact.path, outcome.error)
            outcomes.append(outcome)
        return outcomes

    def _aggregate(self, outcomes: List[Outcome], dry_run: bool) -> AggregateResult:
        self._enter(PipelineState.AGGREGATING)
        result = AggregateResult.from_outcomes(outcomes, dry_run=dry_run)
        self.logger.info(
            "Aggregated %d artifact(s): %d succeeded, %d failed",
            result.total,
            result.succeeded,
            result.failed,
        )
        self._enter(PipelineState.DONE)
        return result

    # ------------------------------------------------------------------
    # Helpers

    def _require_runner(self) -> LLMRunner:
        if self.llm_runner is None:
            raise LLMError("No language model is configured")
        return self.llm_runner

    def _checked_url(self, repo_url: str) -> str:
        normalized = normalize_repo_url(repo_url)
        if not normalized:
            raise AmbiguousIntentError("Repository URL is required")
        return normalized

    def _reset(self) -> None:
        self.history = [PipelineState.IDLE]

    def _enter(self, state: PipelineState) -> None:
        self.logger.debug("State %s -> %s", self.state.value, state.value)
        self.history.append(state)


__all__ = ["PipelineCoordinator", "PipelineResult", "PipelineState", "summarize_artifacts"]
