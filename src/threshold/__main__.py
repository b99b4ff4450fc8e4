"""CLI entry point for threshold."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import yaml
from rich.markup import escape

from . import __version__
from .config import lang_config_for, load_settings
from .paths import canonicalize
from .services.trust import TrustStore, TrustStoreCorruptError
from .workspace import find_workspace


def _workspace_arg(path: str | None) -> Path:
    if path:
        return Path(path)
    return find_workspace()[0]


def _build_store(args: argparse.Namespace) -> tuple[TrustStore, Path]:
    config_dir = Path(args.config_dir).expanduser() if args.config_dir else None
    try:
        settings = load_settings(config_dir)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    data_dir = Path(args.data_dir).expanduser() if args.data_dir else settings.data_dir
    store = TrustStore(data_dir)
    store.initialize()
    return store, settings.config_dir


def _run_trust_workspace(store: TrustStore, args: argparse.Namespace) -> None:
    from .cli import renderer

    workspace = _workspace_arg(args.path)
    if canonicalize(workspace) is None:
        renderer.print_status(f"Could not resolve {workspace}; nothing recorded")
        return
    store.trust_workspace(workspace, completely=args.completely)
    label = "Trusted completely" if args.completely else "Trusted"
    renderer.print_status(f"{label}: {workspace}")


def _run_untrust_workspace(store: TrustStore, args: argparse.Namespace) -> None:
    from .cli import renderer

    workspace = _workspace_arg(args.path)
    if canonicalize(workspace) is None:
        renderer.print_status(f"Could not resolve {workspace}; nothing recorded")
        return
    store.untrust_workspace(workspace)
    renderer.print_status(f"Untrusted: {workspace}")


def _run_status(store: TrustStore, args: argparse.Namespace) -> None:
    from .cli import renderer

    workspace = _workspace_arg(args.path)
    state = store.is_workspace_trusted(workspace)
    local = store.is_local_lang_config_trusted(workspace)
    renderer.stdout_console.print(f"{escape(str(workspace))}: {renderer.render_state(state)}", soft_wrap=True)
    renderer.stdout_console.print(f"  local config trusted: {'yes' if local else 'no'}", soft_wrap=True)


def _run_trust_file(store: TrustStore, args: argparse.Namespace) -> None:
    from .cli import renderer

    path = Path(args.file)
    contents = path.read_bytes()
    newly = store.trust_file(path, contents)
    renderer.print_status(f"{'Trusted' if newly else 'Re-trusted'}: {path}")


def _run_untrust_file(store: TrustStore, args: argparse.Namespace) -> None:
    from .cli import renderer

    path = Path(args.file)
    if store.untrust_file(path):
        renderer.print_status(f"Untrusted: {path}")
    else:
        renderer.print_status(f"No file trust recorded for {path}")


def _run_list(store: TrustStore) -> None:
    from .cli import renderer

    records = store.records()
    if not records:
        renderer.print_status("No trust decisions recorded")
        return
    for key in sorted(records):
        renderer.stdout_console.print(f"{escape(key)}  {renderer.describe_record(records[key])}", soft_wrap=True)


def _run_config(store: TrustStore, config_dir: Path, args: argparse.Namespace) -> None:
    workspace = _workspace_arg(args.path)
    config = lang_config_for(store, args.use_local, config_dir=config_dir, workspace=workspace)
    sys.stdout.write(yaml.safe_dump(config, default_flow_style=False, sort_keys=False))


def _run_trust_dialog(store: TrustStore, args: argparse.Namespace) -> None:
    from .cli import renderer
    from .cli.trust_prompt import needs_trust_prompt, prompt_workspace_trust

    target = Path(args.file) if args.file else Path.cwd()
    if not args.force and not needs_trust_prompt(store, target):
        state = store.is_workspace_trusted(target)
        renderer.print_status(f"Workspace already decided ({state.value}); pass --force to ask again")
        return
    asyncio.run(prompt_workspace_trust(store, target))


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="threshold", description="Threshold - decide which workspaces may run their tooling"
    )
    subparsers = parser.add_subparsers(dest="command")

    tw_parser = subparsers.add_parser("trust-workspace", help="Trust a workspace (default: current)")
    tw_parser.add_argument("path", nargs="?", default=None, help="Workspace directory")
    tw_parser.add_argument(
        "--completely",
        action="store_true",
        help="Also trust the workspace's local languages.yaml",
    )

    uw_parser = subparsers.add_parser("untrust-workspace", help="Explicitly deny a workspace")
    uw_parser.add_argument("path", nargs="?", default=None, help="Workspace directory")

    dialog_parser = subparsers.add_parser("trust-dialog", help="Ask interactively whether to trust a workspace")
    dialog_parser.add_argument("file", nargs="?", default=None, help="File or directory inside the workspace")
    dialog_parser.add_argument("--force", action="store_true", help="Ask even if a decision is already recorded")

    status_parser = subparsers.add_parser("status", help="Show the trust state of a workspace")
    status_parser.add_argument("path", nargs="?", default=None, help="Workspace directory")

    tf_parser = subparsers.add_parser("trust-file", help="Trust a file's current contents")
    tf_parser.add_argument("file", help="File to trust")

    uf_parser = subparsers.add_parser("untrust-file", help="Forget a file's trust")
    uf_parser.add_argument("file", help="File to untrust")

    subparsers.add_parser("list", help="List recorded trust decisions")

    config_parser = subparsers.add_parser("config", help="Print the effective language configuration")
    config_parser.add_argument("path", nargs="?", default=None, help="Workspace directory")
    local_group = config_parser.add_mutually_exclusive_group()
    local_group.add_argument(
        "--local",
        dest="use_local",
        action="store_const",
        const=True,
        default=None,
        help="Merge the workspace-local config without asking the trust store",
    )
    local_group.add_argument(
        "--no-local",
        dest="use_local",
        action="store_const",
        const=False,
        help="Ignore the workspace-local config",
    )

    # Global flags
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--data-dir", dest="data_dir", default=None, help="Override the data directory")
    parser.add_argument("--config-dir", dest="config_dir", default=None, help="Override the config directory")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if args.command is None:
        parser.print_help()
        return

    store, config_dir = _build_store(args)

    try:
        if args.command == "trust-workspace":
            _run_trust_workspace(store, args)
        elif args.command == "untrust-workspace":
            _run_untrust_workspace(store, args)
        elif args.command == "trust-dialog":
            _run_trust_dialog(store, args)
        elif args.command == "status":
            _run_status(store, args)
        elif args.command == "trust-file":
            _run_trust_file(store, args)
        elif args.command == "untrust-file":
            _run_untrust_file(store, args)
        elif args.command == "list":
            _run_list(store)
        elif args.command == "config":
            _run_config(store, config_dir, args)
    except TrustStoreCorruptError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
