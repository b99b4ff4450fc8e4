"""Interactive workspace trust dialog.

Shown when a file is opened in a workspace with no trust decision yet. The
dialog only ever calls TrustStore.trust_workspace / untrust_workspace; store
failures are reported as a status line instead of being raised.

A pending prompt is not cancelled if the file that triggered it is closed in
the meantime; answering still records the decision.
"""

from __future__ import annotations

import enum
import logging
from pathlib import Path

from ..paths import canonicalize
from ..services.trust import TrustState, TrustStore
from ..workspace import find_workspace_in
from . import renderer
from .renderer import ERROR_RED, GOLD, MUTED, SLATE, TRUST_GREEN, TRUST_YELLOW

logger = logging.getLogger(__name__)


class TrustChoice(enum.Enum):
    DO_NOT_TRUST = "do-not-trust"
    TRUST = "trust"
    TRUST_COMPLETELY = "trust-completely"


_OPTIONS = (
    (
        TrustChoice.DO_NOT_TRUST,
        "n",
        "Do not trust",
        ERROR_RED,
        "Do not allow language servers, formatters, debuggers and the like. "
        "Local config can be trusted manually.",
    ),
    (
        TrustChoice.TRUST,
        "t",
        "Trust",
        TRUST_YELLOW,
        "Allow language servers, formatters, debuggers and the like. "
        "Local config will still need to be trusted manually.",
    ),
    (
        TrustChoice.TRUST_COMPLETELY,
        "c",
        "Trust completely",
        TRUST_GREEN,
        "Allow language servers, formatters, debuggers and the like, "
        "and load this workspace's local config.",
    ),
)

_ANSWERS = {
    "n": TrustChoice.DO_NOT_TRUST,
    "no": TrustChoice.DO_NOT_TRUST,
    "t": TrustChoice.TRUST,
    "y": TrustChoice.TRUST,
    "yes": TrustChoice.TRUST,
    "trust": TrustChoice.TRUST,
    "c": TrustChoice.TRUST_COMPLETELY,
    "completely": TrustChoice.TRUST_COMPLETELY,
}


def needs_trust_prompt(store: TrustStore, file_path: Path) -> bool:
    """True when nothing has been decided yet for the workspace holding file_path."""
    return store.is_workspace_trusted(file_path) is TrustState.UNKNOWN


def apply_choice(store: TrustStore, workspace: Path, choice: TrustChoice) -> str | None:
    """Record choice for workspace. Returns an error message on failure, else None."""
    if canonicalize(workspace) is None:
        return f"Could not resolve {workspace}; nothing recorded"
    try:
        if choice is TrustChoice.DO_NOT_TRUST:
            store.untrust_workspace(workspace)
        elif choice is TrustChoice.TRUST:
            store.trust_workspace(workspace, completely=False)
        else:
            store.trust_workspace(workspace, completely=True)
    except OSError as e:
        logger.warning("Could not record trust decision for %s: %s", workspace, e)
        return str(e)
    return None


async def prompt_workspace_trust(store: TrustStore, file_path: Path | None) -> TrustChoice | None:
    """Ask whether to trust the workspace containing file_path and record the answer.

    Returns the choice, or None if the user dismissed the dialog.
    """
    if file_path is None:
        renderer.print_error("Could not open trust dialog: the file does not have a path.")
        return None

    workspace = find_workspace_in(file_path)[0]

    renderer.console.print(f"\n[{GOLD} bold]Trust workspace[/{GOLD} bold] [{SLATE}]'{workspace}'[/{SLATE}]?")
    for _, key, label, color, explanation in _OPTIONS:
        renderer.console.print(f"  [{key}] [{color} bold]{label}[/{color} bold]  [{MUTED}]{explanation}[/{MUTED}]")

    try:
        from prompt_toolkit import PromptSession as _TrustSession

        _trust_session = _TrustSession()

        while True:
            answer = await _trust_session.prompt_async("  [n] Do not trust  [t] Trust  [c] Trust completely: ")
            choice_key = answer.strip().lower()

            if not choice_key:
                renderer.print_status("No decision recorded")
                return None

            choice = _ANSWERS.get(choice_key)
            if choice is None:
                continue

            error = apply_choice(store, workspace, choice)
            if error:
                renderer.print_status(error)
            else:
                renderer.print_status(f"Recorded '{choice.value}' for {workspace}")
            return choice

    except (EOFError, KeyboardInterrupt):
        renderer.print_status("No decision recorded")
        return None
