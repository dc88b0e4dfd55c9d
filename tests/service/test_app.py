"""Tests for the FastAPI service mode."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from kubeprompt.errors import AmbiguousIntentError, LLMError, NotFoundError, RetrievalError
from kubeprompt.models import (
    Action,
    AggregateResult,
    Analysis,
    Answer,
    Artifact,
    BackendHealth,
    FetchResult,
    GeneratedManifest,
    Intent,
    Outcome,
)
from kubeprompt.orchestrator import PipelineResult, PipelineState
from kubeprompt.service import create_app

REPO = "https://github.com/org/repo.git"


class _StubCoordinator:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, object]]] = []
        self.error: Exception | None = None

    def _record(self, name: str, **kwargs: object) -> None:
        self.calls.append((name, kwargs))
        if self.error is not None:
            raise self.error

    def fetch(self, repo_url, branch=None, filename=None, *, include_all=False):
        self._record("fetch", repo_url=repo_url, branch=branch, filename=filename, include_all=include_all)
        artifact = Artifact(
            path="k8s/app.yaml",
            absolute_path=Path("/tmp/hidden/k8s/app.yaml"),
            content="apiVersion: v1\nkind: Service\n",
            size=29,
            is_manifest=True,
        )
        return FetchResult(repo_url=REPO, branch=branch or "main", artifacts=[artifact])

    def apply(self, repo_url, branch=None, filename=None, *, namespace=None, dry_run=False, action=Action.APPLY):
        self._record(
            "apply",
            repo_url=repo_url,
            branch=branch,
            filename=filename,
            namespace=namespace,
            dry_run=dry_run,
            action=action,
        )
        return AggregateResult.from_outcomes(
            [
                Outcome(path="a.yaml", succeeded=True, output="service/my-svc created", resources=("service/my-svc",)),
                Outcome(path="b.yaml", succeeded=False, output="", error="boom"),
            ],
            dry_run=dry_run,
        )

    def run(self, instruction):
        self._record("run", instruction=instruction)
        intent = Intent(repo_url=REPO, branch="main", action=Action.APPLY, filename="app.yaml", confidence=0.5)
        result = AggregateResult.from_outcomes([], dry_run=False)
        return PipelineResult(
            intent=intent,
            action=Action.APPLY,
            message="apply finished: 0/0 succeeded",
            state=PipelineState.DONE,
            result=result,
            degraded_reason="no model configured",
        )

    def ask(self, question):
        self._record("ask", question=question)
        return Answer(question=question, answer="Use a Deployment.", context="unknown")

    def generate(self, prompt):
        self._record("generate", prompt=prompt)
        return GeneratedManifest(prompt=prompt, content="apiVersion: v1\nkind: Pod\n", valid=True)

    def generate_and_apply(self, prompt, *, namespace=None, dry_run=False):
        self._record("generate_and_apply", prompt=prompt, namespace=namespace, dry_run=dry_run)
        result = AggregateResult.from_outcomes(
            [Outcome(path="generated.yaml", succeeded=True, output="pod/web created", resources=("pod/web",))],
            dry_run=dry_run,
        )
        return PipelineResult(
            intent=None,
            action=Action.APPLY,
            message="apply of generated manifest finished: 1/1 succeeded",
            state=PipelineState.DONE,
            result=result,
            generated=GeneratedManifest(prompt=prompt, content="apiVersion: v1\nkind: Pod\n", valid=True),
        )

    def analyze(self, repo_url, branch=None, action=Action.SHOW):
        self._record("analyze", repo_url=repo_url, branch=branch, action=action)
        return Analysis(repo_url=REPO, branch="main", action=action, files=["k8s/app.yaml"], analysis="Looks fine.")

    def backend_health(self):
        self._record("backend_health")
        return BackendHealth(base_url="http://llm.local/v1", model="tiny", connected=True, response_time_ms=4.2)

    def purge(self):
        self._record("purge")
        return True


@pytest.fixture
def coordinator() -> _StubCoordinator:
    return _StubCoordinator()


@pytest.fixture
def client(coordinator: _StubCoordinator) -> TestClient:
    return TestClient(create_app(lambda: coordinator))


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_fetch_endpoint_hides_absolute_paths(client: TestClient, coordinator: _StubCoordinator) -> None:
    response = client.post("/git/yaml", json={"repoUrl": "github.com/org/repo", "branch": "dev"})

    assert response.status_code == 200
    body = response.json()
    assert body["totalFiles"] == 1
    assert body["branch"] == "dev"
    assert body["yamlFiles"][0]["path"] == "k8s/app.yaml"
    assert "fullPath" not in body["yamlFiles"][0]
    assert coordinator.calls == [
        ("fetch", {"repo_url": "github.com/org/repo", "branch": "dev", "filename": None, "include_all": False})
    ]


def test_apply_endpoint(client: TestClient, coordinator: _StubCoordinator) -> None:
    response = client.post(
        "/git/apply",
        json={"repoUrl": "github.com/org/repo", "namespace": "web", "dryRun": True, "action": "delete"},
    )

    assert response.status_code == 200
    body = response.json()
    assert (body["totalFiles"], body["successFiles"], body["failedFiles"]) == (2, 1, 1)
    assert body["allResources"] == ["service/my-svc"]
    assert body["dryRun"] is True
    kwargs = coordinator.calls[0][1]
    assert kwargs["namespace"] == "web"
    assert kwargs["action"] is Action.DELETE


def test_apply_endpoint_rejects_show(client: TestClient, coordinator: _StubCoordinator) -> None:
    response = client.post("/git/apply", json={"repoUrl": "github.com/org/repo", "action": "show"})

    assert response.status_code == 400
    assert coordinator.calls == []


def test_instruction_endpoint(client: TestClient, coordinator: _StubCoordinator) -> None:
    response = client.post("/git/ai", json={"request": "github.com/org/repo app.yaml 적용"})

    assert response.status_code == 200
    body = response.json()
    assert body["parsedRequest"]["repoUrl"] == REPO
    assert body["degradedReason"] == "no model configured"
    assert body["state"] == "done"
    assert coordinator.calls[0] == ("run", {"instruction": "github.com/org/repo app.yaml 적용"})


def test_query_endpoint(client: TestClient) -> None:
    response = client.post("/ai/query", json={"query": "How do I scale?"})

    assert response.status_code == 200
    assert response.json()["answer"] == "Use a Deployment."
    assert response.json()["context"] == "unknown"


def test_purge_endpoint(client: TestClient) -> None:
    response = client.delete("/git/workspaces")
    assert response.status_code == 200
    assert response.json() == {"removed": True}


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (AmbiguousIntentError("no repository"), 400),
        (NotFoundError("File not found in repository: x.yaml"), 404),
        (RetrievalError("git clone failed"), 502),
        (LLMError("backend down"), 502),
    ],
)
def test_errors_map_to_status_codes(
    client: TestClient, coordinator: _StubCoordinator, error: Exception, status: int
) -> None:
    coordinator.error = error

    response = client.post("/git/yaml", json={"repoUrl": "github.com/org/repo"})

    assert response.status_code == status
    assert response.json() == {"detail": str(error)}


def test_missing_fields_are_rejected(client: TestClient) -> None:
    assert client.post("/git/yaml", json={}).status_code == 422


def test_fetch_endpoint_include_all(client: TestClient, coordinator: _StubCoordinator) -> None:
    response = client.post("/git/yaml", json={"repoUrl": "github.com/org/repo", "includeAll": True})

    assert response.status_code == 200
    assert coordinator.calls[0][1]["include_all"] is True


def test_generate_endpoint(client: TestClient, coordinator: _StubCoordinator) -> None:
    response = client.post("/ai/generate", json={"prompt": "a pod named web"})

    assert response.status_code == 200
    body = response.json()
    assert body["generatedYaml"] == "apiVersion: v1\nkind: Pod\n"
    assert body["valid"] is True
    assert body["validationError"] == ""
    assert coordinator.calls == [("generate", {"prompt": "a pod named web"})]


def test_generate_apply_endpoint(client: TestClient, coordinator: _StubCoordinator) -> None:
    response = client.post(
        "/ai/generate-apply",
        json={"prompt": "a pod named web", "namespace": "dev", "dryRun": True},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["applyResult"]["allResources"] == ["pod/web"]
    assert body["applyResult"]["dryRun"] is True
    assert body["generated"]["prompt"] == "a pod named web"
    assert coordinator.calls == [
        ("generate_and_apply", {"prompt": "a pod named web", "namespace": "dev", "dry_run": True})
    ]


def test_analyze_endpoint(client: TestClient, coordinator: _StubCoordinator) -> None:
    response = client.post("/git/analyze", json={"repoUrl": "github.com/org/repo", "action": "apply"})

    assert response.status_code == 200
    body = response.json()
    assert body["analysis"] == "Looks fine."
    assert body["files"] == ["k8s/app.yaml"]
    assert coordinator.calls[0][1]["action"] is Action.APPLY


def test_analyze_endpoint_maps_missing_manifests_to_404(
    client: TestClient, coordinator: _StubCoordinator
) -> None:
    coordinator.error = NotFoundError("No Kubernetes manifests to analyze")

    response = client.post("/git/analyze", json={"repoUrl": "github.com/org/repo"})

    assert response.status_code == 404


def test_ai_health_endpoint(client: TestClient) -> None:
    response = client.get("/ai/health")

    assert response.status_code == 200
    body = response.json()
    assert body["isConnected"] is True
    assert body["model"] == "tiny"
    assert body["responseTimeMs"] == 4.2


def test_generate_endpoint_maps_backend_failure(client: TestClient, coordinator: _StubCoordinator) -> None:
    coordinator.error = LLMError("No language model is configured")

    response = client.post("/ai/generate", json={"prompt": "a pod"})

    assert response.status_code == 502
