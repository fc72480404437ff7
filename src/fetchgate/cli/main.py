import asyncio
import json
import os
import time
import typing as t
from dataclasses import asdict, dataclass
from typing import Annotated

import httpx
import pydantic
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from fetchgate.cli.callbacks import headers_callback, parse_header, timeout_callback, urls_callback
from fetchgate.config import DispatcherSettings
from fetchgate.dispatcher import Dispatcher
from fetchgate.exceptions import FetchGateError, HTTPStatusError
from fetchgate.logging import setup_logging
from fetchgate.transport import HttpxTransport, RequestOptions, Transport

app = typer.Typer(no_args_is_help=True)

DEFAULT_BASE_URL = "https://httpbin.org/anything"


class TimedTransport:
    """Records when each URL was last handed to the wrapped transport."""

    def __init__(self, inner: Transport) -> None:
        self._inner = inner
        self.started_at: dict[str, float] = {}

    async def send(self, *, url: str, options: RequestOptions) -> httpx.Response:
        self.started_at[url] = time.monotonic()
        return await self._inner.send(url=url, options=options)


@dataclass
class FetchOutcome:
    url: str
    ok: bool
    started_at: float | None
    finished_at: float
    detail: str
    body: t.Any = None


async def _fetch_one(
    dispatcher: Dispatcher,
    timing: TimedTransport,
    url: str,
    headers: dict[str, str],
    started: float,
) -> FetchOutcome:
    def outcome(ok: bool, detail: str, body: t.Any = None) -> FetchOutcome:
        sent_at = timing.started_at.get(url)
        return FetchOutcome(
            url=url,
            ok=ok,
            started_at=None if sent_at is None or sent_at < started else sent_at - started,
            finished_at=time.monotonic() - started,
            detail=detail,
            body=body,
        )

    try:
        body = await dispatcher.request(url, {"headers": headers})
    except HTTPStatusError as e:
        return outcome(ok=False, detail=str(e.status_code))
    except FetchGateError as e:
        return outcome(ok=False, detail=str(object=e))
    return outcome(ok=True, detail="ok", body=body)


async def _fetch_all(
    dispatcher: Dispatcher,
    timing: TimedTransport,
    urls: list[str],
    headers: dict[str, str],
) -> list[FetchOutcome]:
    started = time.monotonic()
    return list(
        await asyncio.gather(
            *(_fetch_one(dispatcher, timing, url, headers, started) for url in urls)
        )
    )


def _format_offset(seconds: float | None) -> str:
    return "-" if seconds is None else f"{seconds * 1000:.0f} ms"


def print_outcomes(outcomes: list[FetchOutcome], title: str = "Requests"):
    table = Table("URL", "Outcome", "Started After", "Finished After", title=title)
    for outcome in outcomes:
        status = "[green]ok[/green]" if outcome.ok else f"[red]{outcome.detail}[/red]"
        table.add_row(
            outcome.url,
            status,
            _format_offset(outcome.started_at),
            _format_offset(outcome.finished_at),
        )
    console = Console()
    console.print(table)


def _load_settings(**overrides: t.Any) -> DispatcherSettings:
    try:
        return DispatcherSettings.from_env(**overrides)
    except pydantic.ValidationError as e:
        raise typer.BadParameter(message=str(object=e)) from e


async def _with_dispatcher(settings: DispatcherSettings, run: t.Callable[..., t.Awaitable[t.Any]]):
    inner = HttpxTransport(timeout_seconds=settings.timeout_seconds)
    timing = TimedTransport(inner)
    try:
        async with Dispatcher.from_settings(settings, transport=timing) as dispatcher:
            return await run(dispatcher, timing)
    finally:
        await inner.aclose()


@app.command(name="fetch")
def fetch(
    urls: Annotated[
        list[str],
        typer.Argument(help="URLs to request concurrently", callback=urls_callback),
    ],
    headers: Annotated[
        list[str] | None,
        typer.Option(
            "-H",
            "--header",
            help="Header sent with every request, as 'Name: value'",
            callback=headers_callback,
        ),
    ] = None,
    max_concurrent: Annotated[
        int | None,
        typer.Option("-c", "--max-concurrent", min=1, help="Requests in flight per host"),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option(
            "-t", "--timeout", help="Request timeout in seconds", callback=timeout_callback
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print results as JSON instead of a table"),
    ] = False,
):
    """Request URLs through a deduplicating, per-host limited dispatcher"""
    settings = _load_settings(max_concurrent=max_concurrent, timeout_seconds=timeout)
    setup_logging(level=settings.log_level, json_output=json_output)
    request_headers = dict(parse_header(item) for item in headers or [])

    async def run(dispatcher: Dispatcher, timing: TimedTransport) -> list[FetchOutcome]:
        return await _fetch_all(dispatcher, timing, urls, request_headers)

    outcomes = asyncio.run(_with_dispatcher(settings, run))
    if json_output:
        typer.echo(json.dumps([asdict(outcome) for outcome in outcomes], indent=2, default=str))
    else:
        print_outcomes(outcomes)
    if not all(outcome.ok for outcome in outcomes):
        raise typer.Exit(1)


async def _run_demo(
    dispatcher: Dispatcher,
    timing: TimedTransport,
    base_url: str,
    headers: dict[str, str],
) -> None:
    console = Console()

    console.print("[bold]Sending 5 concurrent requests...[/bold]")
    outcomes = await _fetch_all(
        dispatcher, timing, [f"{base_url}?test={i}" for i in range(1, 6)], headers
    )
    print_outcomes(outcomes, title="Concurrent requests")

    console.print("[bold]Checking request deduplication...[/bold]")
    url = f"{base_url}?deduplication-test=1"
    outcomes = await _fetch_all(dispatcher, timing, [url, url, url], headers)
    identical = all(outcome.ok for outcome in outcomes) and (
        len({id(outcome.body) for outcome in outcomes}) == 1
    )
    print_outcomes(outcomes, title="Deduplication")
    console.print(
        Panel(
            f"Responses shared: [{'green' if identical else 'red'}]{identical}[/]",
            expand=False,
        )
    )

    console.print(
        f"[bold]Checking per-host request limit ({dispatcher.max_concurrent} max at a time)...[/bold]"
    )
    outcomes = await _fetch_all(
        dispatcher, timing, [f"{base_url}?limit-test={i}" for i in range(1, 6)], headers
    )
    print_outcomes(outcomes, title="Rate limiting")

    console.print("[bold]Checking if requests beyond limit are queued...[/bold]")
    outcomes = await _fetch_all(
        dispatcher, timing, [f"{base_url}?queue-test={i}" for i in range(1, 7)], headers
    )
    print_outcomes(outcomes, title="Queueing")


@app.command(name="demo")
def demo(
    base_url: Annotated[
        str | None,
        typer.Option("--base-url", help="Endpoint echoing query parameters back as JSON"),
    ] = None,
):
    """Run the deduplication and queueing scenarios against an echo endpoint"""
    settings = _load_settings()
    setup_logging(level=settings.log_level)
    base_url = base_url or os.getenv(key="FETCHGATE_BASE_URL") or DEFAULT_BASE_URL
    api_key = os.getenv(key="FETCHGATE_API_KEY")
    headers = {"x-apikey": api_key} if api_key else {}

    console = Console()
    console.print(f"Running scenarios against: {base_url}")
    if api_key:
        console.print("Using API key authentication.")

    async def run(dispatcher: Dispatcher, timing: TimedTransport) -> None:
        await _run_demo(dispatcher, timing, base_url, headers)

    asyncio.run(_with_dispatcher(settings, run))
