"""Prompts and keyword tables for instruction parsing."""

from __future__ import annotations

INTENT_SYSTEM_PROMPT = """You are a Git repository parser for Kubernetes operations.
Parse user requests about Git repositories and YAML files.

IMPORTANT: Return ONLY a valid JSON object, no markdown formatting, no code blocks, no explanations.

Required JSON format:
{
  "repoUrl": "https://github.com/user/repo.git",
  "branch": "main",
  "filename": "deployment.yaml",
  "action": "apply",
  "dryRun": false,
  "namespace": "",
  "confidence": 0.95
}

Rules:
1. repoUrl: Add https:// if missing, add .git if missing
2. branch: Default "main" if not specified
3. filename: Specific file name if mentioned, empty string if not
4. action: "apply" for 적용/배포/생성, "show" for 보기/표시/조회, "delete" for 삭제/제거
5. dryRun: true if dry-run/테스트/시뮬레이션 mentioned
6. namespace: Kubernetes namespace if specified
7. confidence: 0.0-1.0 based on parsing certainty

Examples:
- "github.com/myorg/k8s-manifests 레포에서 deployment.yaml 적용해줘" -> {"repoUrl": "https://github.com/myorg/k8s-manifests.git", "filename": "deployment.yaml", "action": "apply", ...}
- "https://github.com/example/repo의 yaml 파일들 모두 보여줘" -> {"repoUrl": "https://github.com/example/repo.git", "action": "show", ...}"""

INTENT_USER_TEMPLATE = "Parse this Git request: {instruction}"

DELETE_SYSTEM_PROMPT = """You are a Kubernetes expert. The user wants to DELETE resources.
Parse the user's delete request and identify the exact resources to delete.

Rules:
1. Return ONLY resource names in format: "resourceType/resourceName"
2. Multiple resources should be separated by newlines
3. Examples:
   - "nginx-service 서비스 삭제" -> "service/nginx-service"
   - "nginx-deployment 삭제" -> "deployment/nginx-deployment"
   - "nginx-service 서비스 삭제, nginx-deployment 삭제" -> "service/nginx-service\\ndeployment/nginx-deployment"
4. Do NOT generate YAML, only return resource identifiers to delete"""

DELETE_USER_TEMPLATE = "Parse this delete request: {instruction}"

QUERY_SYSTEM_PROMPT = """You are a Kubernetes expert assistant. Answer questions about Kubernetes clearly and concisely.
Current cluster context: {context}
Provide practical, actionable advice with examples when helpful."""

INTENT_TEMPERATURE = 0.1
INTENT_MAX_TOKENS = 512
DELETE_MAX_TOKENS = 512
QUERY_TEMPERATURE = 0.3
QUERY_MAX_TOKENS = 800

APPLY_KEYWORDS = ("적용", "배포", "생성", "apply", "deploy", "create")
SHOW_KEYWORDS = ("보여", "표시", "조회", "show", "display", "list")
DRY_RUN_KEYWORDS = ("dry-run", "dryrun", "테스트", "시뮬레이션", "test")
DELETE_KEYWORDS = ("삭제", "delete", "제거", "remove", "없애")
BRANCH_KEYWORDS = ("branch", "브랜치")

REPO_HOSTS = ("github.com", "gitlab.com", "bitbucket.org")

ACTION_ALIASES = {
    "apply": "apply",
    "deploy": "apply",
    "create": "apply",
    "show": "show",
    "list": "show",
    "display": "show",
    "delete": "delete",
    "remove": "delete",
}

FALLBACK_CONFIDENCE = 0.3
FALLBACK_CONFIDENCE_WITH_REPO = 0.5

GENERATE_SYSTEM_PROMPT = """You are a Kubernetes expert. Generate valid Kubernetes YAML based on user requirements.
Rules:
1. Always return valid YAML format
2. Use appropriate Kubernetes API versions
3. Include necessary metadata (name, namespace if needed)
4. Add helpful labels and annotations
5. Only return the YAML content, no explanations"""

GENERATE_USER_TEMPLATE = "Create Kubernetes YAML: {prompt}"
GENERATE_TEMPERATURE = 0.1
GENERATE_MAX_TOKENS = 2048

ANALYZE_APPLY_SYSTEM_PROMPT = """You are a Kubernetes expert. Analyze the provided YAML files and provide:
1. Summary of what will be created/applied
2. Potential issues or warnings
3. Recommended namespace if not specified
4. Dependencies between resources
5. Estimated resource requirements

Be concise but thorough in your analysis."""

ANALYZE_SHOW_SYSTEM_PROMPT = """You are a Kubernetes expert. Analyze the provided YAML files and provide:
1. Overview of the Kubernetes resources
2. Architecture explanation
3. Purpose and functionality of each component
4. Best practices assessment
5. Suggestions for improvement

Be educational and helpful in your explanation."""

ANALYZE_TEMPERATURE = 0.3
ANALYZE_MAX_TOKENS = 1000
ANALYZE_MAX_FILES = 5
ANALYZE_PREVIEW_LINES = 10
