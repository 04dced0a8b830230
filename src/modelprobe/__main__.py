"""
modelprobe command-line interface entry point.

Probes OpenAI-compatible chat-completion endpoints from the terminal: validate
many models at once in streaming or non-streaming mode, list the model
catalog, read the billing quota and compare streaming against non-streaming
performance for a single model. Options can also be given as environment
variables prefixed with MODELPROBE_, e.g. MODELPROBE_TARGET.

Example:
::
    # Validate two models with streaming and a JSON export
    modelprobe run --target https://api.example.com --api-key sk-... \\
        --model gpt-4o --model claude-3-sonnet --mode streaming \\
        --output-path results.json

    # Probe every model the endpoint lists
    modelprobe run --target https://api.example.com --all-models
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
import orjson

from modelprobe.backends import OpenAIHTTPTransport
from modelprobe.monitor import PerformanceComparator
from modelprobe.orchestrator import PROBE_MODES, ProbeOrchestrator
from modelprobe.progress import (
    Console,
    ConsoleProbeProgress,
    print_comparison,
    print_report,
)
from modelprobe.schemas import ProbeMode, RunReport
from modelprobe.settings import print_config, settings

__all__ = ["cli", "compare", "config", "models", "quota", "run"]


def target_options(func):
    func = click.option(
        "--api-key",
        type=str,
        default=None,
        help="API key sent as a Bearer token.",
    )(func)
    return click.option(
        "--target",
        type=str,
        required=True,
        help="Base URL of the OpenAI-compatible server, e.g. https://api.example.com",
    )(func)


def timeout_option(func):
    return click.option(
        "--timeout-ms",
        type=click.IntRange(min=1),
        default=settings.default_timeout_ms,
        show_default=True,
        help="Base probe timeout in milliseconds before per-model adjustments.",
    )(func)


def prompt_option(func):
    return click.option(
        "--prompt",
        type=str,
        default=settings.default_prompt,
        show_default=True,
        help="Prompt sent to every model.",
    )(func)


def read_models_file(path: Path) -> list[str]:
    """
    :param path: File with one model per line, blank lines and lines starting
        with # are ignored
    :return: The model identifiers in file order
    """
    lines = (line.strip() for line in path.read_text(encoding="utf-8").splitlines())
    return [line for line in lines if line and not line.startswith("#")]


@click.group()
@click.version_option(
    package_name="modelprobe", message="modelprobe version: %(version)s"
)
def cli():
    """modelprobe CLI for validating and benchmarking chat-completion models."""


@cli.command(
    help=(
        "Probe models against an endpoint and classify each one as valid, "
        "inconsistent, invalid or stream empty."
    ),
    context_settings={"auto_envvar_prefix": "MODELPROBE"},
)
@target_options
@click.option(
    "--model",
    "-m",
    "model_names",
    multiple=True,
    help="Model to probe, may be given multiple times.",
)
@click.option(
    "--models-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="File with one model per line.",
)
@click.option(
    "--all-models",
    is_flag=True,
    default=False,
    help="Probe every model listed by the endpoint's /v1/models route.",
)
@prompt_option
@timeout_option
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=settings.default_concurrency,
    show_default=True,
    help="Number of models probed at the same time.",
)
@click.option(
    "--mode",
    type=click.Choice(PROBE_MODES),
    default="non-streaming",
    show_default=True,
    help="Whether the probes request a streamed response.",
)
@click.option(
    "--compare",
    is_flag=True,
    default=False,
    help="After a streaming run, probe every model again without streaming.",
)
@click.option(
    "--output-path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the full report as JSON to this file.",
)
@click.option(
    "--disable-progress",
    is_flag=True,
    default=False,
    help="Do not print per-probe progress lines.",
)
def run(
    target,
    api_key,
    model_names,
    models_file,
    all_models,
    prompt,
    timeout_ms,
    concurrency,
    mode,
    compare,
    output_path,
    disable_progress,
):
    names = list(model_names)
    if models_file is not None:
        names.extend(read_models_file(models_file))
    if not names and not all_models:
        raise click.UsageError(
            "No models given, use --model, --models-file or --all-models."
        )

    console = Console()
    report = asyncio.run(
        _run(
            target=target,
            api_key=api_key,
            names=names,
            all_models=all_models,
            prompt=prompt,
            timeout_ms=timeout_ms,
            concurrency=concurrency,
            mode=mode,
            compare=compare,
            console=None if disable_progress else console,
        )
    )
    print_report(report, console)

    if output_path is not None:
        output_path.write_bytes(
            orjson.dumps(report.model_dump(mode="json"), option=orjson.OPT_INDENT_2)
        )
        console.print_update(f"Report written to {output_path}", status="success")


async def _run(
    target: str,
    api_key: str | None,
    names: list[str],
    all_models: bool,
    prompt: str,
    timeout_ms: int,
    concurrency: int,
    mode: ProbeMode,
    compare: bool,
    console: Console | None,
) -> RunReport:
    async with OpenAIHTTPTransport(target, api_key=api_key) as transport:
        if all_models:
            names = [*names, *await transport.available_models()]

        orchestrator = ProbeOrchestrator(transport)
        total = len(set(names))
        run_kwargs = {
            "concurrency": concurrency,
            "mode": mode,
            "include_comparison": compare,
        }

        if console is None:
            return await orchestrator.run(names, prompt, timeout_ms, **run_kwargs)

        with ConsoleProbeProgress(total=total, console=console) as progress:
            return await orchestrator.run(
                names, prompt, timeout_ms, progress=progress, **run_kwargs
            )


@cli.command(
    help="List the models the endpoint reports on its /v1/models route.",
    context_settings={"auto_envvar_prefix": "MODELPROBE"},
)
@target_options
def models(target, api_key):
    async def _models() -> list[str]:
        async with OpenAIHTTPTransport(target, api_key=api_key) as transport:
            return await transport.available_models()

    for model in asyncio.run(_models()):
        click.echo(model)


@cli.command(
    help="Show the account hard limit and this month's usage.",
    context_settings={"auto_envvar_prefix": "MODELPROBE"},
)
@target_options
def quota(target, api_key):
    async def _quota():
        async with OpenAIHTTPTransport(target, api_key=api_key) as transport:
            return await transport.quota()

    info = asyncio.run(_quota())
    limit = "unknown" if info.hard_limit_usd is None else f"${info.hard_limit_usd:.2f}"
    Console().print_update(
        f"Used ${info.used_amount:.2f} of {limit}", status="info"
    )


@cli.command(
    help="Compare streaming and non-streaming performance of one model.",
    context_settings={"auto_envvar_prefix": "MODELPROBE"},
)
@target_options
@click.option("--model", "-m", "model_name", required=True, help="Model to compare.")
@prompt_option
@timeout_option
@click.option(
    "--iterations",
    type=click.IntRange(min=1),
    default=settings.monitor.comparison_iterations,
    show_default=True,
    help="Number of streaming and non-streaming probe pairs.",
)
@click.option(
    "--delay",
    type=click.FloatRange(min=0),
    default=settings.monitor.comparison_delay,
    show_default=True,
    help="Seconds to wait between iterations.",
)
def compare(target, api_key, model_name, prompt, timeout_ms, iterations, delay):
    async def _compare():
        async with OpenAIHTTPTransport(target, api_key=api_key) as transport:
            comparator = PerformanceComparator(ProbeOrchestrator(transport))
            return await comparator.compare(
                model_name, prompt, timeout_ms, iterations=iterations, delay_s=delay
            )

    print_comparison(asyncio.run(_compare()), Console())


@cli.command(
    short_help="Show configuration settings.",
    help="Display environment variables for configuring modelprobe behavior.",
)
def config():
    print_config()


if __name__ == "__main__":
    cli()
