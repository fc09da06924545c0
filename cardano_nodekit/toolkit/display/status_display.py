"""Rich rendering of the failover status report."""

from typing import TYPE_CHECKING, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.box import ROUNDED

from cardano_nodekit import __version__
from cardano_nodekit.config import PRODUCER_PORT_THRESHOLD
from cardano_nodekit.toolkit.core.probe import ProbeResult
from cardano_nodekit.toolkit.core.unit_file import Role
from cardano_nodekit.toolkit.core.utils import format_age, format_timestamp

from .constants import (
    STYLE_CYAN, STYLE_BRIGHT_CYAN, STYLE_GREEN_BOLD, STYLE_BOLD_RED, STYLE_DIM,
    STYLE_YELLOW_BOLD, ICON_SUCCESS, ICON_FAILED, ICON_WARNING, APP_NAME, HEADER_TITLE_STATUS
)

if TYPE_CHECKING:
    from cardano_nodekit.toolkit.commands.status import StatusReport

PROBE_STYLES = {
    ProbeResult.REACHABLE: STYLE_GREEN_BOLD,
    ProbeResult.UNREACHABLE: STYLE_BOLD_RED,
    ProbeResult.INDETERMINATE: STYLE_YELLOW_BOLD,
}


class StatusDisplay:
    """Renders a StatusReport as a single table panel."""

    def __init__(self, console: Optional[Console] = None, timezone: str = "UTC") -> None:
        self.console = console or Console()
        self.timezone = timezone

    @staticmethod
    def _flag(ok: bool, text: str, warn: bool = False) -> Text:
        if ok:
            return Text(f"{ICON_SUCCESS} {text}", style=STYLE_GREEN_BOLD)
        if warn:
            return Text(f"{ICON_WARNING} {text}", style=STYLE_YELLOW_BOLD)
        return Text(f"{ICON_FAILED} {text}", style=STYLE_BOLD_RED)

    def build_table(self, report: "StatusReport") -> Table:
        settings = report.settings
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("label", style=STYLE_BRIGHT_CYAN, no_wrap=True)
        table.add_column("value")

        parent = Text(f"{settings.parent_address}:{settings.parent_port}")
        if settings.parent_port < PRODUCER_PORT_THRESHOLD:
            parent.append(f"  (port below {PRODUCER_PORT_THRESHOLD}: usually a relay)", style=STYLE_YELLOW_BOLD)
        table.add_row("Parent", parent)
        if report.parent_network:
            table.add_row("Parent network", report.parent_network)
        table.add_row("This host is parent", "yes" if report.is_parent else "no")

        identity = report.identity
        table.add_row("Local addresses", ", ".join(sorted(identity.local_addresses)) or "-")
        table.add_row("External IPv4", identity.external_ipv4 or Text("unknown", style=STYLE_DIM))
        table.add_row("External IPv6", identity.external_ipv6 or Text("unknown", style=STYLE_DIM))
        if identity.preset_addresses:
            table.add_row("Preset addresses", ", ".join(sorted(identity.preset_addresses)))

        if report.probe is None:
            table.add_row("Parent probe", Text("skipped", style=STYLE_DIM))
        else:
            table.add_row("Parent probe", Text(str(report.probe), style=PROBE_STYLES[report.probe]))

        table.add_row("Unit file", str(report.unit_path) if report.unit_path else Text("not found", style=STYLE_BOLD_RED))
        if report.unit_encoding:
            table.add_row("Role encoding", report.unit_encoding)
        if report.role_error:
            table.add_row("Current role", Text(report.role_error, style=STYLE_BOLD_RED))
        elif report.role is not None:
            style = STYLE_GREEN_BOLD if report.role == Role.BLOCK_PRODUCER else STYLE_CYAN
            table.add_row("Current role", Text(str(report.role), style=style))
        if report.unit_mtime is not None:
            changed = format_timestamp(report.unit_mtime, self.timezone)
            table.add_row("Unit last changed", f"{changed} ({format_age(report.unit_age or 0)} ago)")

        for cred in report.credentials.files:
            table.add_row(cred.label, self._flag(cred.present, str(cred.path)))
        table.add_row("Credentials", self._flag(report.credentials.complete,
                                                "complete" if report.credentials.complete else "incomplete",
                                                warn=True))

        table.add_row("Service", self._flag(report.service_active, f"{settings.service_name} "
                                            f"{'active' if report.service_active else 'inactive'}", warn=True))

        if report.decision is not None:
            decision = report.decision.action.value
            if report.decision.target_role is not None:
                decision += f" -> {report.decision.target_role}"
            table.add_row("Next heartbeat", decision)
        return table

    def render(self, report: "StatusReport") -> None:
        title = Text(f"{APP_NAME} v{__version__} | {HEADER_TITLE_STATUS}", style=STYLE_GREEN_BOLD)
        self.console.print(Panel(self.build_table(report), title=title, box=ROUNDED, border_style=STYLE_CYAN))
