"""kubectl invocation and output normalisation."""

from __future__ import annotations

import os
import re
import subprocess
import tempfile
from typing import Callable, Iterable, List, Optional, Tuple

from ..logging import get_logger
from ..models import Action, Artifact, Outcome, dedupe

# One pattern covers both output styles kubectl prints per resource:
#   deployment.apps/web created          (apply, delete by identifier)
#   deployment.apps "web" deleted        (delete -f)
# A trailing "(dry run)" / "(server dry run)" marker is ignored.
_RESOURCE_LINE = re.compile(
    r"(?P<kind>[A-Za-z][A-Za-z0-9\-]*(?:\.[A-Za-z0-9\-.]+)?)"
    r"(?:/(?P<name>[A-Za-z0-9][A-Za-z0-9.\-:]*)|\s+\"(?P<quoted>[^\"]+)\")"
    r"\s+(?P<verb>created|configured|unchanged|deleted)\b"
)

Runner = Callable[..., Tuple[int, str]]


def extract_resources(output: str) -> List[str]:
    """Return ``kind/name`` identifiers reported in kubectl output, deduplicated in order."""
    resources = []
    for match in _RESOURCE_LINE.finditer(output):
        name = match.group("name") or match.group("quoted")
        resources.append(f"{match.group('kind')}/{name}")
    return dedupe(resources)


class MutationExecutor:
    """Applies or deletes manifests through the kubectl executable.

    Failures never raise: they come back as an :class:`Outcome` with
    ``succeeded=False`` so callers can keep going with other artifacts.
    """

    def __init__(
        self,
        *,
        executable: str = "kubectl",
        context: str | None = None,
        timeout: Optional[float] = None,
        runner: Runner | None = None,
    ) -> None:
        self.executable = executable
        self.context = context
        self.timeout = timeout
        self._runner = runner or self._default_runner
        self.logger = get_logger("kube.executor")

    def execute(
        self,
        artifact: Artifact,
        namespace: str | None = None,
        dry_run: bool = False,
        action: Action = Action.APPLY,
    ) -> Outcome:
        """Run ``kubectl apply|delete -f`` for a single artifact."""
        if action is Action.SHOW:
            return Outcome(
                path=artifact.path,
                succeeded=False,
                output="",
                error="show is a read-only action and cannot be executed",
            )

        try:
            handle = tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                prefix="kubeprompt-apply-",
                suffix=".yaml",
                delete=False,
            )
        except OSError as exc:
            return self._failed(artifact.path, f"Unable to create temporary manifest: {exc}")

        try:
            try:
                with handle:
                    handle.write(artifact.content)
            except (OSError, UnicodeError) as exc:
                return self._failed(artifact.path, f"Unable to write temporary manifest: {exc}")
            args = [action.value, "-f", handle.name]
            if namespace:
                args.extend(["-n", namespace])
            if dry_run:
                args.append("--dry-run=client")
            if action is Action.DELETE:
                args.append("--ignore-not-found=true")
            return self._invoke(artifact.path, args)
        finally:
            try:
                os.remove(handle.name)
            except FileNotFoundError:
                pass
            except OSError as exc:
                self.logger.warning("Failed to remove temporary manifest %s: %s", handle.name, exc)

    def delete_resource(
        self,
        identifier: str,
        namespace: str | None = None,
        dry_run: bool = False,
    ) -> Outcome:
        """Run ``kubectl delete kind/name`` without a manifest file."""
        args = ["delete", identifier]
        if namespace and namespace != "default":
            args.extend(["-n", namespace])
        if dry_run:
            args.append("--dry-run=client")
        return self._invoke(identifier, args)

    def current_context(self) -> str:
        """Return the active kubeconfig context name, or an empty string."""
        code, output = self._run(["config", "current-context"])
        if code != 0:
            self.logger.debug("current-context failed: %s", output.strip())
            return ""
        return output.strip()

    # ------------------------------------------------------------------
    # Helpers

    def _invoke(self, label: str, args: List[str]) -> Outcome:
        self.logger.debug("Running %s %s", self.executable, " ".join(args))
        code, output = self._run(args)
        if code != 0:
            self.logger.warning("kubectl failed for %s (exit %d)", label, code)
            return self._failed(label, output.strip() or f"kubectl exited with status {code}", output)
        resources = extract_resources(output)
        self.logger.info("kubectl succeeded for %s: %d resource(s)", label, len(resources))
        return Outcome(path=label, succeeded=True, output=output, resources=tuple(resources))

    def _run(self, args: List[str]) -> Tuple[int, str]:
        command = [self.executable]
        if self.context:
            command.extend(["--context", self.context])
        command.extend(args)
        try:
            return self._runner(command, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            return 124, f"{self.executable} timed out after {self.timeout}s"
        except OSError as exc:
            return 127, f"Unable to run '{self.executable}': {exc}"

    @staticmethod
    def _failed(label: str, detail: str, output: str = "") -> Outcome:
        return Outcome(path=label, succeeded=False, output=output, error=detail)

    @staticmethod
    def _default_runner(args: Iterable[str], *, timeout: Optional[float] = None) -> Tuple[int, str]:
        completed = subprocess.run(
            list(args),
            check=False,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=timeout,
        )
        return completed.returncode, completed.stdout or ""


__all__ = ["MutationExecutor", "extract_resources"]
