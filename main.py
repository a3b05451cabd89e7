"""Main module for Job Tracker AI command line."""

import asyncio
import json
import logging
import signal
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from jobtracker_ai.cancellation import CancellationToken
from jobtracker_ai.config import settings
from jobtracker_ai.content import HtmlContentExtractor, PageFetcher, is_job_posting_page
from jobtracker_ai.engine import create_orchestrator
from jobtracker_ai.exceptions import (
    ExtractionCancelledError,
    ExtractionRateLimitedError,
    InferenceUnavailableError,
    PageFetchError,
)
from jobtracker_ai.llm import get_inference_capability
from jobtracker_ai.output import (
    display_availability,
    display_execution_time,
    display_extraction,
    display_metrics,
    display_partial,
    save_extraction,
)
from jobtracker_ai.storage import get_storage

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
)

app = typer.Typer(
    name="jobtracker-ai",
    help="🤖 Извлечение данных вакансии локальной моделью",
    add_completion=False,
)
console = Console()


@app.command()
def check(
    prewarm: bool = typer.Option(
        False,
        "--prewarm",
        help="Создать сессию модели заранее",
    ),
):
    """Проверить доступность локальной модели."""
    asyncio.run(_check(prewarm))


async def _check(prewarm: bool) -> None:
    capability = get_inference_capability(settings.llm_provider)
    extractor = HtmlContentExtractor("", "about:blank")
    async with create_orchestrator(extractor, capability=capability) as engine:
        console.print(f"[bold blue]🤖 Модель:[/bold blue] {settings.llm_model} @ {settings.ollama_url}")
        result = await engine.check_availability()
        display_availability(result)

        if prewarm and result.available:
            with console.status("[bold green]Создание сессии..."):
                ok = await engine.prewarm_session()
            console.print("[green]Сессия готова[/green]" if ok else "[red]Не удалось создать сессию[/red]")


@app.command()
def extract(
    url: str = typer.Argument(..., help="URL страницы с вакансией"),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Игнорировать кэш и ограничения частоты",
    ),
    html_file: Optional[Path] = typer.Option(
        None,
        "--html-file",
        help="Взять HTML из файла вместо загрузки",
    ),
    markdown: bool = typer.Option(
        False,
        "--markdown",
        help="Передавать модели markdown вместо текста",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Вывести результат в JSON",
    ),
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Сохранить результат в файл",
    ),
    full: bool = typer.Option(
        False,
        "--full",
        help="Показать описание целиком",
    ),
    metrics: bool = typer.Option(
        False,
        "--metrics",
        help="Показать метрики движка",
    ),
):
    """Извлечь компанию, позицию и описание вакансии со страницы."""
    start_time = time.perf_counter()

    try:
        result, engine_metrics = asyncio.run(
            _extract(url, force, html_file, markdown, show_partials=not as_json)
        )
    except PageFetchError as e:
        console.print(f"[red]Не удалось загрузить страницу: {e}[/red]")
        raise typer.Exit(1)
    except InferenceUnavailableError as e:
        console.print(f"[red]Модель недоступна: {e}[/red]")
        raise typer.Exit(1)
    except ExtractionRateLimitedError as e:
        console.print(f"[yellow]Слишком часто, попробуйте позже: {e.reason}[/yellow]")
        raise typer.Exit(1)
    except ExtractionCancelledError:
        console.print("[yellow]Извлечение отменено[/yellow]")
        raise typer.Exit(130)

    if as_json:
        console.print_json(json.dumps(result.to_dict(), ensure_ascii=False))
    else:
        display_extraction(result, full=full)

    if output:
        save_extraction(result, output)
    if metrics:
        display_metrics(engine_metrics)
    if not as_json:
        display_execution_time(time.perf_counter() - start_time)


async def _extract(
    url: str,
    force: bool,
    html_file: Optional[Path],
    markdown: bool,
    show_partials: bool,
):
    """Асинхронное извлечение с отменой по Ctrl-C."""
    if html_file is not None:
        html, final_url = html_file.read_text(encoding="utf-8"), url
    else:
        async with PageFetcher() as fetcher:
            html, final_url = await fetcher.fetch(url)

    extractor = HtmlContentExtractor(html, final_url, as_markdown=markdown)
    content = extractor.extract_content()
    if not is_job_posting_page(final_url, content["title"], content["text"]):
        console.print("[yellow]⚠️  Страница не похожа на вакансию[/yellow]")

    token = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "interrupted by user")
    except NotImplementedError:
        pass  # Windows: Ctrl-C raises KeyboardInterrupt instead

    storage = None
    if settings.storage_backend == "sqlite":
        storage = get_storage("sqlite", scope=settings.storage_scope)

    async with create_orchestrator(extractor, storage=storage) as engine:
        result = await engine.extract(
            force=force,
            cancel_token=token,
            on_partial=display_partial if show_partials else None,
            source="cli",
        )
        return result, await engine.get_performance_metrics()


@app.command("clear-cache")
def clear_cache():
    """Очистить сохраненный кэш страниц и результатов."""
    asyncio.run(_clear_cache())


async def _clear_cache() -> None:
    if settings.storage_backend != "sqlite":
        console.print("[dim]Кэш хранится в памяти, очищать нечего[/dim]")
        return
    storage = get_storage("sqlite", scope=settings.storage_scope)
    try:
        await storage.clear()
    finally:
        await storage.close()
    console.print(f"[green]Кэш очищен (scope: {settings.storage_scope})[/green]")


@app.command()
def info():
    """Показать текущие настройки."""
    console.print(f"[bold]Провайдер:[/bold] {settings.llm_provider}")
    console.print(f"[bold]Модель:[/bold] {settings.llm_model}")
    console.print(f"[bold]Ollama:[/bold] {settings.ollama_url}")
    console.print(f"[bold]Хранилище:[/bold] {settings.storage_backend} ({settings.storage_scope})")
    console.print(
        f"[bold]Лимиты:[/bold] пауза {settings.extraction_cooldown:.0f}s, "
        f"{settings.max_extractions_per_window} за {settings.extraction_window:.0f}s"
    )


if __name__ == "__main__":
    app()
