"""Rich-based terminal output for the threshold CLI."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape

from ..services.trust import FileTrust, Revoked, TrustRecord, TrustState, WorkspaceTrust

console = Console(stderr=True)
# Separate console for stdout output that may be piped (config dumps, listings)
stdout_console = Console()

# ---------------------------------------------------------------------------
# Color palette — explicit values for readability on dark terminals.
# ---------------------------------------------------------------------------

GOLD = "#C5A059"  # accents, prompt headings
SLATE = "#94A3B8"  # paths
MUTED = "#8b8b8b"  # secondary text (option descriptions, confirmations)
ERROR_RED = "#CD6B6B"  # "Do not trust", errors
TRUST_YELLOW = "#D4B44A"  # "Trust"
TRUST_GREEN = "#7FB77E"  # "Trust completely"

_STATE_STYLES = {
    TrustState.TRUSTED: TRUST_GREEN,
    TrustState.UNTRUSTED: ERROR_RED,
    TrustState.UNKNOWN: MUTED,
}


def render_state(state: TrustState) -> str:
    style = _STATE_STYLES[state]
    return f"[{style}]{state.value}[/{style}]"


def describe_record(record: TrustRecord) -> str:
    if isinstance(record, WorkspaceTrust):
        if record.completely:
            return f"[{TRUST_GREEN}]workspace (completely)[/{TRUST_GREEN}]"
        return f"[{TRUST_YELLOW}]workspace[/{TRUST_YELLOW}]"
    if isinstance(record, FileTrust):
        return f"[{SLATE}]file {record.hash[:12]}[/{SLATE}]"
    if isinstance(record, Revoked):
        return f"[{ERROR_RED}]untrusted[/{ERROR_RED}]"
    raise TypeError(f"unexpected trust record {record!r}")


def print_status(message: str) -> None:
    console.print(f"  [{MUTED}]{escape(message)}[/{MUTED}]")


def print_error(message: str) -> None:
    console.print(f"[{ERROR_RED}]Error:[/{ERROR_RED}] {escape(message)}")
