"""Command-line entry point for the publish pipeline."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .config import PublisherConfig, load_config
from .errors import ConfigError, ReleaseError
from .manifest import load_manifest
from .pack import pack_directory
from .publisher import Publisher
from .secrets import describe_secret

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFLICT = 3


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "run":
            return _handle_run(args, transform_only=False)
        if args.command == "transform":
            return _handle_run(args, transform_only=True)
        if args.command == "pack":
            return _handle_pack(args)
        if args.command == "secrets":
            return _handle_secrets(args)
    except ReleaseError as exc:
        _print_json(exc.to_dict())
        return EXIT_CONFLICT if exc.status == "conflict" else EXIT_FAILED

    parser.error(f"Unknown command '{args.command}'")
    return EXIT_FAILED


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wasm-release", description="Rename, augment and publish wasm-pack packages."
    )
    parser.add_argument("--log-level", default=os.getenv("WASM_RELEASE_LOG_LEVEL", "info"))
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Transform the manifest and publish the package.")
    _add_pipeline_args(run)
    run.add_argument("--tag", default=os.getenv("GITHUB_REF_NAME"), help="Triggering tag (default $GITHUB_REF_NAME).")
    run.add_argument("--dry-run", action="store_true", help="Pack only; never contact the registry.")

    transform = subparsers.add_parser("transform", help="Transform and rewrite the manifest only.")
    _add_pipeline_args(transform)

    pack = subparsers.add_parser("pack", help="Write the npm tarball for an artifact directory.")
    pack.add_argument("--artifact-dir", required=True)
    pack.add_argument("--output-dir", help="Where to write the tarball (default: artifact dir).")

    secrets = subparsers.add_parser("secrets", help="Describe registry token resolution.")
    secrets.add_argument("--token-env", default="NPM_TOKEN")
    secrets.add_argument("--dotenv")

    return parser


def _add_pipeline_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="YAML publisher config.")
    parser.add_argument("--artifact-dir")
    parser.add_argument("--manifest-name")
    parser.add_argument("--rename", action="append", metavar="OLD=NEW", help="Rename step (repeatable).")
    parser.add_argument("--add-file", action="append", help="File appended to 'files' (repeatable).")
    parser.add_argument("--set", action="append", dest="set_fields", metavar="FIELD=VALUE")
    parser.add_argument("--registry", dest="registry_url")
    parser.add_argument("--adapter", choices=["http", "npm", "noop"])
    parser.add_argument("--token-env")
    parser.add_argument("--dotenv")
    parser.add_argument("--access", choices=["public", "restricted"])
    parser.add_argument("--dist-tag")
    parser.add_argument("--tag-pattern")
    parser.add_argument("--require-version-match", action="store_true", default=None)


def _handle_run(args: argparse.Namespace, *, transform_only: bool) -> int:
    config = _load_config(args)
    publisher = Publisher(config)
    tag = None if transform_only else args.tag
    report = publisher.run(tag, transform_only=transform_only)
    _print_json(report.to_dict())
    if report.ok:
        return EXIT_OK
    return EXIT_CONFLICT if report.status == "conflict" else EXIT_FAILED


def _handle_pack(args: argparse.Namespace) -> int:
    artifact_dir = _resolve_path(args.artifact_dir)
    manifest = load_manifest(artifact_dir / "package.json")
    result = pack_directory(artifact_dir, manifest)
    output_dir = _resolve_path(args.output_dir) if args.output_dir else artifact_dir
    path = result.write_to(output_dir)
    _print_json(
        {
            "path": str(path),
            "files": result.files,
            "size": result.size,
            "shasum": result.shasum,
            "integrity": result.integrity,
        }
    )
    return EXIT_OK


def _handle_secrets(args: argparse.Namespace) -> int:
    dotenv = _resolve_path(args.dotenv) if args.dotenv else None
    _print_json(describe_secret(args.token_env, dotenv=dotenv))
    return EXIT_OK


def _load_config(args: argparse.Namespace) -> PublisherConfig:
    config_path = _resolve_path(args.config) if args.config else None
    overrides: Dict[str, Any] = {
        "artifact_dir": str(_resolve_path(args.artifact_dir)) if args.artifact_dir else None,
        "manifest_name": args.manifest_name,
        "registry_url": args.registry_url,
        "token_env": args.token_env,
        "dotenv": str(_resolve_path(args.dotenv)) if args.dotenv else None,
        "access": args.access,
        "dist_tag": args.dist_tag,
        "tag_pattern": args.tag_pattern,
        "require_version_match": args.require_version_match,
        "steps": _steps_from_args(args),
    }
    if getattr(args, "dry_run", False):
        overrides["adapter"] = "noop"
    elif args.adapter:
        overrides["adapter"] = args.adapter
    return load_config(config_path, overrides)


def _steps_from_args(args: argparse.Namespace) -> List[Mapping[str, Any]]:
    steps: List[Mapping[str, Any]] = []
    for entry in args.rename or []:
        old, new = _split_pair(entry, "--rename")
        steps.append({"kind": "rename", "expected": old, "name": new})
    if args.add_file:
        steps.append({"kind": "add-files", "files": list(args.add_file)})
    for entry in args.set_fields or []:
        field, value = _split_pair(entry, "--set")
        steps.append({"kind": "set-field", "field": field, "value": _coerce_value(value)})
    return steps


def _split_pair(entry: str, flag: str) -> tuple[str, str]:
    if "=" not in entry:
        raise ConfigError(f"{flag} must be key=value (got '{entry}')")
    key, value = entry.split("=", 1)
    return key.strip(), value.strip()


def _coerce_value(value: str) -> object:
    """Accept JSON literals (``true``, ``3``, ``["a"]``) and fall back to the raw string."""

    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _resolve_path(value: str) -> Path:
    return Path(value).expanduser().resolve()


def _print_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, indent=2, default=str))


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
