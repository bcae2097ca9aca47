import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import uvicorn
from pydantic import ValidationError

from esshims.config import IGNORE_DIRS, IGNORE_SUFFIXES, SOURCE_EXTENSIONS
from esshims.models import ProviderOptions
from esshims.services.provider import PolyfillProvider
from esshims.services.transform import transform_file

logger = logging.getLogger(__name__)


def _is_source_file(name: str) -> bool:
    if name.endswith(IGNORE_SUFFIXES):
        return False
    return Path(name).suffix.lower() in SOURCE_EXTENSIONS


def collect_source_files(paths: List[str]) -> List[Tuple[Path, Path]]:
    """
    Expand the CLI paths into (file, path relative to its input) pairs.

    Directories are walked with the same ignore rules as a project scan;
    explicitly named files are always included.
    """
    files: List[Tuple[Path, Path]] = []
    for raw in paths:
        target = Path(raw)
        if not target.exists():
            raise SystemExit(f"Path does not exist: {target}")

        if target.is_file():
            files.append((target, Path(target.name)))
            continue

        for root, dirs, names in os.walk(target):
            # Filter ignored dirs
            dirs[:] = sorted(d for d in dirs if d not in IGNORE_DIRS and not d.startswith("."))
            for name in sorted(names):
                if _is_source_file(name):
                    file_path = Path(root) / name
                    files.append((file_path, file_path.relative_to(target)))
    return files


def _parse_targets(raw: List[str]) -> Dict[str, str]:
    targets: Dict[str, str] = {}
    for item in raw:
        engine, sep, version = item.partition("=")
        if not sep or not engine or not version:
            raise SystemExit(f"Invalid target {item!r}, expected ENGINE=VERSION (e.g. chrome=60)")
        targets[engine.strip()] = version.strip()
    return targets


def build_options(args: argparse.Namespace) -> ProviderOptions:
    """Options from `--config` (if any), overridden by explicit CLI flags."""
    data: dict = {}
    if args.config:
        try:
            with open(args.config, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SystemExit(f"Failed to read config {args.config}: {e}")

    try:
        options = ProviderOptions.model_validate(data)
    except ValidationError as e:
        raise SystemExit(f"Invalid config {args.config}:\n{e}")

    if args.method:
        options.method = args.method
    if args.targets:
        options.targets = _parse_targets(args.targets)
    if args.include:
        options.include = args.include
    if args.exclude:
        options.exclude = args.exclude
    if args.debug:
        options.debug = True
    if args.log:
        options.missing_dependencies.log = args.log
    if args.all:
        options.missing_dependencies.all = True
    return options


def run_transform(args: argparse.Namespace) -> int:
    options = build_options(args)
    root = os.path.abspath(args.root)

    try:
        provider = PolyfillProvider(root, options=options)
    except ValueError as e:
        raise SystemExit(str(e))

    files = collect_source_files(args.paths)
    if not files:
        print("🤷 No JavaScript or TypeScript sources found.", file=sys.stderr)
        return 0

    out_dir: Optional[Path] = Path(args.out_dir) if args.out_dir else None
    if out_dir is None and len(files) > 1:
        raise SystemExit("--out-dir is required when transforming more than one file")

    failures = 0
    for file_path, rel_path in files:
        try:
            result = transform_file(file_path, provider)
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Error transforming %s: %s", file_path, e)
            failures += 1
            continue

        if out_dir is None:
            sys.stdout.write(result.code)
            continue

        destination = out_dir / rel_path
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(result.code, encoding="utf-8")
        if result.changed:
            print(f"✅ {file_path} -> {destination} ({len(set(result.polyfills))} polyfills)", file=sys.stderr)

    return 1 if failures else 0


def run_serve(args: argparse.Namespace) -> int:
    url = f"http://{args.host}:{args.port}"
    print(f"🚀 Starting server at {url}")
    print("   Press Ctrl+C to stop.")

    uvicorn.run(
        "esshims.main:app",
        host=args.host,
        port=args.port,
        reload=False,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="esshims",
        description="Inject es-shims polyfills for the standard library features your code uses.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log every injected polyfill.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    transform = subparsers.add_parser("transform", help="Rewrite source files.")
    transform.add_argument("paths", nargs="+", help="Files or directories to transform.")
    transform.add_argument(
        "--method",
        choices=["usage-global", "usage-pure"],
        help="Import polyfills for their side effects (default) or replace usages with them.",
    )
    transform.add_argument(
        "--targets",
        nargs="*",
        default=[],
        metavar="ENGINE=VERSION",
        help="Target engines, e.g. chrome=60 node=10. Without targets every polyfill is injected.",
    )
    transform.add_argument("--include", nargs="*", default=[], help="Polyfills to always inject.")
    transform.add_argument("--exclude", nargs="*", default=[], help="Polyfills to never inject.")
    transform.add_argument(
        "--log",
        choices=["per-file", "deferred"],
        help="Report missing dependencies after every file or once at the end (default).",
    )
    transform.add_argument(
        "--all",
        action="store_true",
        help="Report every injected polyfill package as missing without checking node_modules.",
    )
    transform.add_argument(
        "--root",
        default=".",
        help="Project root used to look up installed packages (default: current directory).",
    )
    transform.add_argument("--out-dir", help="Directory to write transformed files to.")
    transform.add_argument("--config", help="JSON file with provider options.")
    transform.add_argument("--debug", action="store_true", help="Print the polyfills added to each file.")
    transform.set_defaults(handler=run_transform)

    serve = subparsers.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface to bind the server to (default: 127.0.0.1).",
    )
    serve.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run the server on (default: 8000).",
    )
    serve.set_defaults(handler=run_serve)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s" if not args.verbose else "%(levelname)s %(name)s: %(message)s",
    )

    code = args.handler(args)
    if code:
        raise SystemExit(code)


if __name__ == "__main__":
    main()
