"""Модуль вывода результатов."""

import json
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from jobtracker_ai.constants import UNKNOWN_VALUE
from jobtracker_ai.models import AvailabilityResult, AvailabilityStatus, ExtractedJobData


console = Console()

STATUS_STYLES = {
    AvailabilityStatus.AVAILABLE: "bold green",
    AvailabilityStatus.DOWNLOADABLE: "bold yellow",
    AvailabilityStatus.DOWNLOADING: "bold yellow",
    AvailabilityStatus.UNAVAILABLE: "bold red",
}

FIELD_LABELS = {
    "company": "Company",
    "position": "Position",
    "job_description": "Description",
    "salary": "Salary",
    "location": "Location",
    "job_type": "Job type",
    "requirements": "Requirements",
    "benefits": "Benefits",
}

PREVIEW_LENGTH = 300


def display_execution_time(elapsed_seconds: float) -> None:
    """Отобразить время выполнения в красивом формате."""
    if elapsed_seconds < 60:
        time_str = f"{elapsed_seconds:.2f} s"
    else:
        minutes = int(elapsed_seconds // 60)
        seconds = elapsed_seconds % 60
        time_str = f"{minutes} min {seconds:.1f} s"

    console.print()
    console.print(Panel(
        f"[bold cyan]⏱️  Execution time:[/bold cyan] [bold white]{time_str}[/bold white]",
        border_style="dim cyan",
        padding=(0, 2),
    ))


def display_availability(result: AvailabilityResult) -> None:
    style = STATUS_STYLES.get(result.status, "bold")
    mark = "✅" if result.available else "❌"
    console.print(f"{mark} Model status: [{style}]{result.status.value}[/{style}]")


def _preview(value: str, full: bool) -> str:
    if full or len(value) <= PREVIEW_LENGTH:
        return escape(value)
    return escape(value[:PREVIEW_LENGTH].rstrip()) + "…"


def display_partial(field: str, value: str) -> None:
    """Показать поле сразу после извлечения."""
    label = FIELD_LABELS.get(field, field)
    console.print(f"[dim]→[/dim] [bold cyan]{label}:[/bold cyan] {_preview(value, False)}")


def display_extraction(result: ExtractedJobData, full: bool = False) -> None:
    """Отобразить результат извлечения."""
    table = Table(title="Extracted job", show_lines=True, show_header=False)
    table.add_column("Field", style="cyan", max_width=15)
    table.add_column("Value", style="green")

    for field, value in result.to_dict().items():
        if isinstance(value, list):
            value = "\n".join(f"• {item}" for item in value)
        cell = _preview(value, full)
        if value == UNKNOWN_VALUE:
            cell = f"[dim]{cell}[/dim]"
        table.add_row(FIELD_LABELS.get(field, field), cell)

    console.print(table)


def display_metrics(metrics: dict) -> None:
    """Показать метрики движка."""
    table = Table(title="Engine metrics", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")

    runs = metrics.get("runs", {})
    session = metrics.get("session", {})
    table.add_row("Session", str(session.get("state")))
    table.add_row("Sessions created", str(session.get("created", 0)))
    table.add_row("Runs", str(runs.get("total_runs", 0)))
    table.add_row("Cache hits", str(runs.get("cache_hits", 0)))
    table.add_row("Partial failures", str(runs.get("partial_failures", 0)))
    table.add_row("Average time", f"{runs.get('average_time_seconds', 0.0):.2f} s")
    for group, seconds in runs.get("last_run", {}).get("prompt_seconds", {}).items():
        table.add_row(f"Prompt {group}", f"{seconds:.2f} s")

    console.print(table)


def save_extraction(result: ExtractedJobData, output_path: str) -> Path:
    """
    Сохранить результат в JSON файл.

    Args:
        result: Результат извлечения
        output_path: Путь к файлу

    Returns:
        Путь к сохраненному файлу
    """
    path = Path(output_path)
    if not path.suffix:
        path = path.with_suffix(".json")
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(result.to_dict(), f, ensure_ascii=False, indent=2)

    console.print(f"[green]Result saved to {path}[/green]")
    return path
