"""CLI entrypoints for kubeprompt commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict

from .config import ConfigError, build_coordinator, load_config
from .errors import KubePromptError
from .logging import configure_logging
from .models import Action, AggregateResult


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_output_options(parser: argparse.ArgumentParser) -> None:
    _add_verbose_option(parser, suppress_default=True)
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON.",
    )


def _add_repo_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("repo", help="Repository URL (scheme and .git suffix optional).")
    parser.add_argument("--branch", default=None, help="Branch to check out (defaults to the primary branch).")
    parser.add_argument("--file", dest="filename", default=None, help="Only use the file with this name.")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kubeprompt",
        description="Fetch Kubernetes manifests from git and apply them from plain-language instructions.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--config",
        default=None,
        help="Path to .kubeprompt.yml or its directory (defaults to the current directory).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write timestamped logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run",
        help="Carry out a natural-language instruction.",
    )
    _add_output_options(run_parser)
    run_parser.add_argument("instruction", help="Instruction, e.g. \"github.com/org/repo app.yaml apply\".")

    fetch_parser = subparsers.add_parser(
        "fetch",
        help="List Kubernetes manifests in a repository.",
    )
    _add_output_options(fetch_parser)
    _add_repo_arguments(fetch_parser)
    fetch_parser.add_argument(
        "--all",
        dest="include_all",
        action="store_true",
        help="List every YAML file, marking which ones are Kubernetes manifests.",
    )

    apply_parser = subparsers.add_parser(
        "apply",
        help="Apply (or delete) every manifest in a repository.",
    )
    _add_output_options(apply_parser)
    _add_repo_arguments(apply_parser)
    apply_parser.add_argument("-n", "--namespace", default=None, help="Target namespace.")
    apply_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Pass --dry-run=client to kubectl.",
    )
    apply_parser.add_argument(
        "--delete",
        action="store_true",
        help="Delete the manifests' resources instead of applying them.",
    )

    ask_parser = subparsers.add_parser(
        "ask",
        help="Ask the language model a Kubernetes question.",
    )
    _add_output_options(ask_parser)
    ask_parser.add_argument("question")

    generate_parser = subparsers.add_parser(
        "generate",
        help="Have the language model write a manifest, optionally applying it.",
    )
    _add_output_options(generate_parser)
    generate_parser.add_argument("prompt", help="Description, e.g. \"nginx deployment with 3 replicas\".")
    generate_parser.add_argument("--apply", action="store_true", help="Apply the generated manifest.")
    generate_parser.add_argument("-n", "--namespace", default=None, help="Target namespace when applying.")
    generate_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Pass --dry-run=client to kubectl when applying.",
    )

    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Have the language model review a repository's manifests.",
    )
    _add_output_options(analyze_parser)
    analyze_parser.add_argument("repo", help="Repository URL (scheme and .git suffix optional).")
    analyze_parser.add_argument("--branch", default=None, help="Branch to check out (defaults to the primary branch).")
    analyze_parser.add_argument(
        "--apply",
        action="store_true",
        help="Review the manifests as they would be applied (risks, namespaces).",
    )

    health_parser = subparsers.add_parser(
        "health",
        help="Check that the language model backend answers.",
    )
    _add_output_options(health_parser)

    purge_parser = subparsers.add_parser(
        "purge",
        help="Remove every temporary repository checkout.",
    )
    _add_verbose_option(purge_parser, suppress_default=True)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=8080)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for kubeprompt commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    if args.command == "serve":
        from .service import run_service

        run_service(host=args.host, port=args.port, config_path=args.config)
        return

    try:
        coordinator = build_coordinator(load_config(args.config))
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")

    as_json = bool(getattr(args, "json", False))
    try:
        if args.command == "run":
            outcome = coordinator.run(args.instruction)
            _emit(outcome.to_dict(), as_json, outcome.message)
            if outcome.result is not None:
                _print_aggregate(outcome.result, as_json)
                _exit_for(parser, outcome.result)
            elif outcome.fetch is not None and not as_json:
                for artifact in outcome.fetch.artifacts:
                    print(f"  {artifact.path} ({artifact.size} bytes)")
        elif args.command == "fetch":
            fetched = coordinator.fetch(
                args.repo, args.branch, args.filename, include_all=bool(args.include_all)
            )
            noun = "YAML file(s)" if args.include_all else "manifest(s)"
            _emit(fetched.to_dict(), as_json, f"{fetched.total} {noun} in {fetched.repo_url}")
            if not as_json:
                for artifact in fetched.artifacts:
                    marker = "" if artifact.is_manifest else " [not a manifest]"
                    print(f"  {artifact.path} ({artifact.size} bytes){marker}")
        elif args.command == "apply":
            result = coordinator.apply(
                args.repo,
                args.branch,
                args.filename,
                namespace=args.namespace,
                dry_run=bool(args.dry_run),
                action=Action.DELETE if args.delete else Action.APPLY,
            )
            _emit(result.to_dict(), as_json, f"{result.succeeded}/{result.total} manifest(s) succeeded")
            _print_aggregate(result, as_json)
            _exit_for(parser, result)
        elif args.command == "ask":
            answer = coordinator.ask(args.question)
            _emit(answer.to_dict(), as_json, answer.answer)
        elif args.command == "generate":
            if args.apply:
                outcome = coordinator.generate_and_apply(
                    args.prompt, namespace=args.namespace, dry_run=bool(args.dry_run)
                )
                if not as_json and outcome.generated is not None:
                    print(outcome.generated.content, end="")
                _emit(outcome.to_dict(), as_json, outcome.message)
                if outcome.result is not None:
                    _print_aggregate(outcome.result, as_json)
                    _exit_for(parser, outcome.result)
            else:
                generated = coordinator.generate(args.prompt)
                _emit(generated.to_dict(), as_json, generated.content.rstrip("\n"))
                if not generated.valid and not as_json:
                    print(f"warning: {generated.error}", file=sys.stderr)
        elif args.command == "analyze":
            analysis = coordinator.analyze(
                args.repo, args.branch, Action.APPLY if args.apply else Action.SHOW
            )
            _emit(analysis.to_dict(), as_json, analysis.analysis)
        elif args.command == "health":
            health = coordinator.backend_health()
            state = "reachable" if health.connected else "unreachable"
            summary = f"{health.model or 'no model'} at {health.base_url or 'n/a'}: {state}"
            _emit(health.to_dict(), as_json, summary)
            if not health.connected:
                parser.exit(1)
        elif args.command == "purge":
            removed = coordinator.purge()
            print("Workspace root removed" if removed else "Nothing to remove")
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except KubePromptError as exc:
        parser.exit(1, f"kubeprompt {args.command} failed: {exc}\nRun with --verbose for more details.\n")


def _emit(payload: Dict[str, Any], as_json: bool, summary: str) -> None:
    if as_json:
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        print(summary)


def _print_aggregate(result: AggregateResult, as_json: bool) -> None:
    if as_json:
        return
    for outcome in result.outcomes:
        marker = "ok" if outcome.succeeded else "FAILED"
        print(f"  [{marker}] {outcome.path}")
        if not outcome.succeeded and outcome.error:
            print(f"      {outcome.error}")
    if result.resources:
        print("Resources: " + ", ".join(result.resources))


def _exit_for(parser: argparse.ArgumentParser, result: AggregateResult) -> None:
    if result.failed:
        parser.exit(2)


if __name__ == "__main__":
    main(sys.argv[1:])
