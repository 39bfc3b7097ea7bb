from __future__ import annotations

"""
Probity CLI

Thin layer: load plan → build Agent → interrogate → print via reporters.
"""

import json
from typing import Optional

import typer

from probity.config.loader import load_agent
from probity.errors import InvalidStepSpec, SchemaUnavailable, StopTriggered
from probity.logging import configure_logging
from probity.reporters.rich_reporter import render_agent
from probity.version import VERSION

app = typer.Typer(help="Probity CLI — interrogate tabular data against a validation plan")

# Exit codes (stable for CI/CD)
EXIT_SUCCESS = 0
EXIT_VALIDATION_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_RUNTIME_ERROR = 3


def _print_version(value: Optional[bool]) -> None:
    if value:
        typer.echo(f"probity {VERSION}")
        raise typer.Exit(code=0)


@app.callback()
def _root(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        help="Show the Probity version and exit.",
        callback=_print_version,
        is_eager=True,
    )
) -> None:
    """Interrogate tabular data against a validation plan."""


@app.command("interrogate")
def interrogate(
    plan: str = typer.Argument(..., help="Path to the YAML plan."),
    data: Optional[str] = typer.Option(
        None,
        "--data",
        help="Table path/URI override (e.g. data/orders.parquet, postgres://.../db/public.orders)",
    ),
    table: Optional[str] = typer.Option(None, "--table", help="Table name inside a database source."),
    mode: Optional[str] = typer.Option(
        None, "--mode", help="'pipeline' halts at the first step reaching its stop threshold."
    ),
    extract_limit: Optional[int] = typer.Option(None, "--extract-limit", min=0, help="Failing rows kept per step."),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Concurrent step evaluations."),
    step_timeout: Optional[float] = typer.Option(None, "--step-timeout", help="Seconds per step evaluation."),
    output_format: str = typer.Option("rich", "--output-format", "-o", help="Output format: rich | json."),
    fail_on: str = typer.Option(
        "stop",
        "--fail-on",
        help="Exit 1 when any step fails ('fail'), reaches stop ('stop'), or never.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose errors and debug logging."),
) -> None:
    """
    Interrogate a table against a validation plan.

    Exit codes: 0 ok, 1 validation failed (per --fail-on), 2 plan/config
    error, 3 runtime error.
    """
    if verbose:
        configure_logging("DEBUG")

    if output_format not in ("rich", "json") or fail_on not in ("fail", "stop", "never"):
        typer.secho("Error: --output-format must be rich|json and --fail-on fail|stop|never", fg=typer.colors.RED)
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    try:
        agent = load_agent(
            plan,
            tbl=data,
            table=table,
            mode=mode,
            extract_limit=extract_limit,
            workers=workers,
            step_timeout=step_timeout,
        )
        halted = False
        with agent:
            try:
                agent.interrogate()
            except StopTriggered as e:
                # Halt reaction: results are published, report them
                halted = True
                typer.secho(str(e), fg=typer.colors.RED, err=True)

            if output_format == "json":
                typer.echo(json.dumps(agent.to_dict(), indent=2, default=str))
            else:
                render_agent(agent)

            if fail_on == "fail":
                failed = not agent.all_passed()
            elif fail_on == "stop":
                failed = halted or "stop" in agent.overall_state()
            else:
                failed = False
        raise typer.Exit(code=EXIT_VALIDATION_FAILED if failed else EXIT_SUCCESS)

    except typer.Exit:
        raise

    except (FileNotFoundError, InvalidStepSpec, SchemaUnavailable, ValueError) as e:
        if verbose:
            typer.secho(f"[CONFIG_ERROR] {e}", fg=typer.colors.RED)
        else:
            typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    except Exception as e:
        if verbose:
            typer.secho(f"[RUNTIME_ERROR] {repr(e)}", fg=typer.colors.RED)
        else:
            typer.secho("An unexpected error occurred. Use --verbose for details.", fg=typer.colors.RED)
        raise typer.Exit(code=EXIT_RUNTIME_ERROR)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
