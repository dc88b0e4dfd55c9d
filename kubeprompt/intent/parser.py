"""Natural-language instruction parsing with a keyword fallback."""

from __future__ import annotations

import json
import math
import re
from typing import Any, List, Mapping, Optional

from ..errors import AmbiguousIntentError, LLMError
from ..llm.runner import LLMRunner
from ..logging import get_logger
from ..models import Action, Degraded, Intent, ParseOutcome, ParseSource, Parsed, dedupe
from .constants import (
    ACTION_ALIASES,
    APPLY_KEYWORDS,
    BRANCH_KEYWORDS,
    DELETE_KEYWORDS,
    DELETE_MAX_TOKENS,
    DELETE_SYSTEM_PROMPT,
    DELETE_USER_TEMPLATE,
    DRY_RUN_KEYWORDS,
    FALLBACK_CONFIDENCE,
    FALLBACK_CONFIDENCE_WITH_REPO,
    INTENT_MAX_TOKENS,
    INTENT_SYSTEM_PROMPT,
    INTENT_TEMPERATURE,
    INTENT_USER_TEMPLATE,
    REPO_HOSTS,
    SHOW_KEYWORDS,
)

_SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")
_FENCE_PATTERN = re.compile(r"```[A-Za-z]*")
_URL_RUN = re.compile(r"[A-Za-z0-9:/._~%+@\-]+")
_TOKEN_TRIM = "\"'`()[]{}<>,;!?"
_RESOURCE_ID = re.compile(r"^[A-Za-z][A-Za-z0-9\-]*(?:\.[A-Za-z0-9\-.]+)?/[a-z0-9](?:[a-z0-9.\-]*[a-z0-9])?$")
_LIST_MARKER = re.compile(r"^(?:[-*•]|\d+[.)])\s*")
_MANIFEST_SUFFIXES = (".yaml", ".yml")

DEFAULT_MODEL_CONFIDENCE = 0.8


def normalize_repo_url(url: str) -> str:
    """Prefix ``https://`` and append ``.git`` where missing. Idempotent."""
    cleaned = url.strip().rstrip("/")
    if not cleaned:
        return ""
    if not _SCHEME_PATTERN.match(cleaned) and not cleaned.startswith("git@"):
        cleaned = f"https://{cleaned}"
    if not cleaned.endswith(".git"):
        cleaned = f"{cleaned}.git"
    return cleaned


def sanitize_response(response: str) -> str:
    """Strip markdown fences and return the outermost ``{...}`` span of ``response``."""
    cleaned = _FENCE_PATTERN.sub("", response).replace("`", "").strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        return cleaned[start : end + 1]
    return cleaned


def detect_delete_intent(instruction: str) -> bool:
    """Return True when the instruction asks for resources to be removed."""
    lowered = instruction.lower()
    return any(keyword in lowered for keyword in DELETE_KEYWORDS)


def parse_resource_identifiers(text: str) -> List[str]:
    """Return ``kind/name`` identifiers found one per line in ``text``."""
    identifiers: List[str] = []
    for raw_line in _FENCE_PATTERN.sub("", text).splitlines():
        line = _LIST_MARKER.sub("", raw_line.strip()).strip(_TOKEN_TRIM + " ")
        if _RESOURCE_ID.match(line):
            identifiers.append(line)
    return dedupe(identifiers)


class IntentParser:
    """Turns free text into an :class:`Intent`.

    The model is asked for a JSON object first. When the call fails or the
    answer cannot be decoded, a deterministic keyword scan takes over and the
    result is returned as :class:`Degraded` with a lower confidence.
    """

    def __init__(
        self,
        llm_runner: LLMRunner | None = None,
        *,
        default_branch: str = "main",
        default_action: Action = Action.SHOW,
    ) -> None:
        self.llm_runner = llm_runner
        self.default_branch = default_branch
        self.default_action = default_action
        self.logger = get_logger("intent")

    # ------------------------------------------------------------------
    # Public API

    def parse(self, instruction: str) -> ParseOutcome:
        if self.llm_runner is None:
            return Degraded(self.fallback(instruction), reason="no model configured")

        try:
            response = self.llm_runner.run(
                INTENT_USER_TEMPLATE.format(instruction=instruction),
                system=INTENT_SYSTEM_PROMPT,
                temperature=INTENT_TEMPERATURE,
                max_tokens=INTENT_MAX_TOKENS,
            )
        except LLMError as exc:
            self.logger.warning("Model call failed, using keyword fallback: %s", exc)
            return Degraded(self.fallback(instruction), reason=f"model call failed: {exc}")

        self.logger.debug("Raw model response: %s", response)
        cleaned = sanitize_response(response)
        try:
            payload = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            self.logger.warning("Model response is not JSON, using keyword fallback: %s", exc)
            return Degraded(self.fallback(instruction), reason=f"undecodable model response: {exc}")
        if not isinstance(payload, dict):
            return Degraded(self.fallback(instruction), reason="model response is not an object")

        intent = self._from_payload(payload, instruction)
        if not intent.repo_url:
            fallback = self.fallback(instruction)
            if fallback.repo_url:
                return Degraded(fallback, reason="model returned no repository")
        return Parsed(intent)

    def resolve(self, instruction: str) -> Intent:
        """Parse ``instruction`` and insist on a repository."""
        return self.resolve_outcome(instruction).intent

    def resolve_outcome(self, instruction: str) -> ParseOutcome:
        """Like :meth:`resolve`, but keep the Parsed/Degraded tag."""
        outcome = self.parse(instruction)
        intent = outcome.intent
        if not intent.repo_url:
            raise AmbiguousIntentError("No repository URL could be resolved from the instruction")
        if isinstance(outcome, Degraded):
            self.logger.info("Intent resolved by fallback (%s): %s", outcome.reason, intent)
        else:
            self.logger.info("Intent resolved by model: %s", intent)
        return outcome

    def fallback(self, instruction: str) -> Intent:
        """Keyword scan used when the model path is unavailable."""
        lowered = instruction.lower()
        words = instruction.split()

        if any(keyword in lowered for keyword in APPLY_KEYWORDS):
            action = Action.APPLY
        elif any(keyword in lowered for keyword in SHOW_KEYWORDS):
            action = Action.SHOW
        else:
            action = self.default_action

        dry_run = any(keyword in lowered for keyword in DRY_RUN_KEYWORDS)

        repo_url = ""
        for word in words:
            candidate = _repo_candidate(word)
            if candidate:
                repo_url = normalize_repo_url(candidate)
                break

        filename: Optional[str] = None
        for word in words:
            token = word.strip(_TOKEN_TRIM).rstrip(".:")
            if token.lower().endswith(_MANIFEST_SUFFIXES):
                filename = token
                break

        # Brittle: any token containing "branch" makes the next token the branch.
        branch = self.default_branch
        for index, word in enumerate(words[:-1]):
            if any(keyword in word.lower() for keyword in BRANCH_KEYWORDS):
                branch = words[index + 1].strip(_TOKEN_TRIM)
                break

        return Intent(
            repo_url=repo_url,
            branch=branch or self.default_branch,
            action=action,
            filename=filename,
            namespace=None,
            dry_run=dry_run,
            confidence=FALLBACK_CONFIDENCE_WITH_REPO if repo_url else FALLBACK_CONFIDENCE,
            source=ParseSource.FALLBACK,
        )

    def parse_delete_targets(self, instruction: str) -> List[str]:
        """Ask the model for ``kind/name`` identifiers to delete.

        Identifiers written literally in the instruction are used when the
        model is unavailable.
        """
        if self.llm_runner is not None:
            try:
                response = self.llm_runner.run(
                    DELETE_USER_TEMPLATE.format(instruction=instruction),
                    system=DELETE_SYSTEM_PROMPT,
                    temperature=INTENT_TEMPERATURE,
                    max_tokens=DELETE_MAX_TOKENS,
                )
            except LLMError as exc:
                self.logger.warning("Model call for delete targets failed: %s", exc)
            else:
                self.logger.debug("Delete targets from model: %s", response)
                identifiers = parse_resource_identifiers(response)
                if identifiers:
                    return identifiers

        literal = parse_resource_identifiers("\n".join(instruction.split()))
        if literal:
            return literal
        raise LLMError("Unable to determine which resources to delete")

    # ------------------------------------------------------------------
    # Helpers

    def _from_payload(self, payload: Mapping[str, Any], instruction: str) -> Intent:
        raw_url = _first_str(payload, ("repoUrl", "repo_url", "repositoryUrl", "repository"))
        branch = _first_str(payload, ("branch",)) or self.default_branch
        filename = _first_str(payload, ("filename", "file")) or None
        namespace = _first_str(payload, ("namespace",)) or None

        raw_action = (_first_str(payload, ("action",)) or "").lower()
        alias = ACTION_ALIASES.get(raw_action)
        if alias is None:
            self.logger.debug("Unknown action %r from model, using keyword scan", raw_action)
            action = self.fallback(instruction).action
        else:
            action = Action(alias)

        return Intent(
            repo_url=normalize_repo_url(raw_url or ""),
            branch=branch,
            action=action,
            filename=filename,
            namespace=namespace,
            dry_run=_as_bool(_first_value(payload, ("dryRun", "dry_run"))),
            confidence=_as_float(payload.get("confidence"), DEFAULT_MODEL_CONFIDENCE),
            source=ParseSource.MODEL,
        )


def _repo_candidate(word: str) -> str:
    lowered = word.lower()
    if not any(host in lowered for host in REPO_HOSTS):
        return ""
    for run in _URL_RUN.findall(word):
        if any(host in run.lower() for host in REPO_HOSTS):
            return run.rstrip(".,:")
    return ""


def _first_value(payload: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def _first_str(payload: Mapping[str, Any], keys: tuple[str, ...]) -> str:
    value = _first_value(payload, keys)
    return value.strip() if isinstance(value, str) else ""


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    if isinstance(value, (int, float)):
        return bool(value)
    return False


def _as_float(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return default
    else:
        return default
    return number if math.isfinite(number) else default


__all__ = [
    "IntentParser",
    "detect_delete_intent",
    "normalize_repo_url",
    "parse_resource_identifiers",
    "sanitize_response",
]
