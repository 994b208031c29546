"""
Outputs module for AWS Cloud Scanner

Renders the final report as rich tables or JSON, at the level of detail chosen
by ReportOptions.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pyfiglet
from rich.console import Console
from rich.table import Table

from .errors import RenderError
from .options import ReportLevel, ReportOptions
from .report import SEVERITIES, Report, Resource, ServiceResults

console = Console()
# Minimum width for tables to ensure readability
TABLE_MINIMUM_WIDTH = 86

SEVERITY_STYLES = {
    "CRITICAL": "bold red",
    "HIGH": "red",
    "MEDIUM": "yellow",
    "LOW": "cyan",
}

FROM_CACHE_NOTICE = (
    "This scan report was loaded from cached results. "
    "If you'd like to run a fresh scan, use --update-cache."
)


def display_banner() -> None:
    """Print the ASCII banner."""
    try:
        banner = pyfiglet.figlet_format("Cloud Scanner", font="slant")
        console.print(f"[bold cyan]{banner}[/bold cyan]")
    except (pyfiglet.FontNotFound, pyfiglet.FigletError, OSError):
        console.print("[bold cyan]AWS CLOUD SCANNER[/bold cyan]")


def _shown_severities(options: ReportOptions) -> List[str]:
    # Most severe first
    return [severity for severity in reversed(SEVERITIES) if severity in options.severities]


def _failure_counts(resources: List[Resource], severities: List[str]) -> Dict[str, int]:
    counts = {severity: 0 for severity in severities}
    for resource in resources:
        for result in resource.results:
            if result.failed and result.severity in counts:
                counts[result.severity] += 1
    return counts


def _filter_service(service_results: ServiceResults, options: ReportOptions) -> Dict[str, Any]:
    data = service_results.to_dict()
    for resource in data["resources"]:
        resource["results"] = [r for r in resource["results"] if r["severity"] in options.severities]
    return data


def build_json_payload(report: Report, options: ReportOptions) -> Dict[str, Any]:
    """Report as a dict, limited to the requested level and severities."""
    payload = report.to_dict()
    results = {
        service: _filter_service(service_results, options) for service, service_results in report.results.items()
    }

    if options.level in (ReportLevel.RESOURCE, ReportLevel.RESULT):
        results = {service: data for service, data in results.items() if service == options.service}
    if options.level == ReportLevel.RESULT:
        for data in results.values():
            data["resources"] = [resource for resource in data["resources"] if resource["arn"] == options.arn]

    payload["results"] = results
    payload["from_cache"] = options.from_cache
    return payload


def create_services_table(report: Report, options: ReportOptions) -> Table:
    severities = _shown_severities(options)
    table = Table(
        title=f"Scan Overview for AWS Account {report.account_id} ({report.region})",
        min_width=TABLE_MINIMUM_WIDTH,
        border_style="bright_blue",
    )
    table.add_column("Service", style="cyan")
    table.add_column("Resources", justify="right")
    for severity in severities:
        table.add_column(severity, justify="right", style=SEVERITY_STYLES[severity])
    table.add_column("Last Scanned", style="dim")

    for service in report.services_in_scope:
        service_results = report.results.get(service)
        if service_results is None:
            table.add_row(service, "0", *["0"] * len(severities), "-")
            continue
        resources = list(service_results.resources.values())
        counts = _failure_counts(resources, severities)
        table.add_row(
            service,
            str(len(resources)),
            *[str(counts[severity]) for severity in severities],
            service_results.updated_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    return table


def create_resources_table(report: Report, options: ReportOptions) -> Table:
    severities = _shown_severities(options)
    table = Table(
        title=f"Resource Summary for Service '{options.service}' ({report.account_id}, {report.region})",
        min_width=TABLE_MINIMUM_WIDTH,
        border_style="bright_blue",
    )
    table.add_column("Resource", style="green")
    table.add_column("Type", style="yellow")
    for severity in severities:
        table.add_column(severity, justify="right", style=SEVERITY_STYLES[severity])

    service_results = report.results.get(options.service or "")
    resources = list(service_results.resources.values()) if service_results else []
    for resource in sorted(resources, key=lambda r: r.arn):
        counts = _failure_counts([resource], severities)
        table.add_row(resource.arn, resource.resource_type, *[str(counts[severity]) for severity in severities])
    return table


def create_results_table(report: Report, options: ReportOptions) -> Table:
    table = Table(title=f"Results for {options.arn}", min_width=TABLE_MINIMUM_WIDTH, border_style="bright_blue")
    table.add_column("Rule", style="white")
    table.add_column("Severity")
    table.add_column("Status")
    table.add_column("Description", style="dim")

    service_results = report.results.get(options.service or "")
    resource = service_results.resources.get(options.arn or "") if service_results else None
    if resource is not None:
        for result in resource.results:
            if result.severity not in options.severities:
                continue
            table.add_row(
                result.rule_id,
                f"[{SEVERITY_STYLES.get(result.severity, 'white')}]{result.severity}[/]",
                "[red]FAIL[/red]" if result.failed else "[green]PASS[/green]",
                result.description,
            )
    return table


def _render_table(report: Report, options: ReportOptions, target: Console) -> None:
    if options.level == ReportLevel.RESULT:
        table = create_results_table(report, options)
    elif options.level == ReportLevel.RESOURCE:
        table = create_resources_table(report, options)
    else:
        table = create_services_table(report, options)

    target.print(table)
    if options.from_cache:
        target.print(f"[dim]{FROM_CACHE_NOTICE}[/dim]")


def ensure_output_directory(output_file: Path) -> None:
    """Ensure the output directory exists, create if it doesn't."""
    output_file.parent.mkdir(parents=True, exist_ok=True)


def compare_with_existing(output_file: Path, new_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Compare new JSON output with an existing file and print what changed."""
    if not output_file.exists():
        return None

    # DeepDiff is only needed for --compare
    from deepdiff import DeepDiff

    existing_data = json.loads(output_file.read_text(encoding="utf-8"))
    diff = DeepDiff(existing_data, new_data, ignore_order=True, exclude_paths=["root['from_cache']"])
    if not diff:
        console.print("[green]No changes detected since last scan.[/green]")
    else:
        console.print("[yellow]Changes detected![/yellow]")
        console.print(diff.to_json(indent=2), markup=False)
    return dict(diff)


def write_report(report: Report, options: ReportOptions) -> None:
    """
    Render the report to ``options.output`` (or stdout).

    Raises:
        RenderError: the output could not be written.
    """
    try:
        if options.output_format == "json":
            payload = build_json_payload(report, options)
            text = json.dumps(payload, indent=2)
            if options.output is None:
                console.out(text, highlight=False)
                return
            ensure_output_directory(options.output)
            if options.compare:
                compare_with_existing(options.output, payload)
            options.output.write_text(text + "\n", encoding="utf-8")
            return

        if options.output is None:
            _render_table(report, options, console)
            return
        ensure_output_directory(options.output)
        with options.output.open("w", encoding="utf-8") as handle:
            _render_table(report, options, Console(file=handle, width=160, no_color=True))
    except (OSError, ValueError) as e:
        raise RenderError(f"unable to write results: {e}") from e
