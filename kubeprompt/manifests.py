"""Classification, cleanup and validation of Kubernetes manifest text."""

from __future__ import annotations

import re
from pathlib import PurePath
from typing import FrozenSet, Iterable, Optional

import yaml

MANIFEST_SUFFIXES = (".yaml", ".yml")

_REQUIRED_MARKERS = ("apiVersion:", "kind:")
_FENCE_PATTERN = re.compile(r"```[A-Za-z]*")
_KIND_PATTERN = re.compile(r"\bkind:[ \t]*[\"']?([A-Za-z][A-Za-z0-9]*)")

KNOWN_KINDS: FrozenSet[str] = frozenset(
    {
        "Pod",
        "Service",
        "Deployment",
        "ConfigMap",
        "Secret",
        "Ingress",
        "PersistentVolume",
        "PersistentVolumeClaim",
        "ServiceAccount",
        "Role",
        "RoleBinding",
        "ClusterRole",
        "ClusterRoleBinding",
        "Namespace",
        "DaemonSet",
        "StatefulSet",
        "Job",
        "CronJob",
        "HorizontalPodAutoscaler",
        "NetworkPolicy",
    }
)


def is_manifest_filename(name: str) -> bool:
    """Return True when the filename follows the YAML extension convention."""
    return PurePath(name).suffix.lower() in MANIFEST_SUFFIXES


class ManifestClassifier:
    """Decides whether a YAML document is a Kubernetes manifest.

    Classification works on raw text: both ``apiVersion:`` and ``kind:`` must
    appear, and at least one ``kind:`` value must be a recognised resource
    kind. Multi-document files are checked as a single blob.
    """

    def __init__(self, extra_kinds: Iterable[str] | None = None) -> None:
        self.kinds = KNOWN_KINDS | frozenset(extra_kinds or ())

    def is_candidate(self, content: str) -> bool:
        if not all(marker in content for marker in _REQUIRED_MARKERS):
            return False
        return any(match in self.kinds for match in _KIND_PATTERN.findall(content))


def clean_manifest(text: str) -> str:
    """Strip code fences and any prose before the first ``apiVersion:``/``kind:`` line."""
    lines = _FENCE_PATTERN.sub("", text).strip().splitlines()
    for index, line in enumerate(lines):
        if line.strip().startswith(_REQUIRED_MARKERS):
            return "\n".join(lines[index:]).strip() + "\n"
    return ""


def validate_manifest(text: str) -> Optional[str]:
    """Return a description of why ``text`` is not loadable YAML, or None."""
    if not text.strip():
        return "manifest is empty"
    try:
        documents = [document for document in yaml.safe_load_all(text) if document is not None]
    except yaml.YAMLError as exc:
        return f"invalid YAML: {exc}"
    if not all(isinstance(document, dict) for document in documents):
        return "every document must be a mapping"
    return None


__all__ = [
    "KNOWN_KINDS",
    "MANIFEST_SUFFIXES",
    "ManifestClassifier",
    "clean_manifest",
    "is_manifest_filename",
    "validate_manifest",
]
