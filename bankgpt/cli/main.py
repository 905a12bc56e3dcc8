"""
CLI interface for BankGPT.

Provides command-line access to the advisor chat flow and its
operational surfaces.
"""

import json
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from bankgpt.config.loader import CONFIG_ENV, AdvisorConfig, load_advisor_config
from bankgpt.core.errors import BankGPTError, InvalidRequest
from bankgpt.core.logging_config import LOG_DIR_ENV, setup_logging
from bankgpt.sdk.advisor import BankAdvisor
from bankgpt.storage.cache_store import initialize_cache_schema
from bankgpt.storage.repository import UsageRepository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1
EXIT_CODE_INVALID = 2

_state = {"config_path": None}


def _load_config() -> AdvisorConfig:
    return load_advisor_config(_state["config_path"])


def _build_advisor(config: AdvisorConfig) -> BankAdvisor:
    return BankAdvisor(config)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        envvar=CONFIG_ENV,
        help="Path to advisor YAML configuration"
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level (defaults to BANKGPT_LOG_LEVEL or INFO)"
    ),
    log_dir: Optional[str] = typer.Option(
        None,
        "--log-dir",
        envvar=LOG_DIR_ENV,
        help="Also write JSON-lines logs to bankgpt.log in this directory"
    )
):
    """BankGPT banking advisor CLI."""
    _state["config_path"] = config
    setup_logging(log_level, log_dir=log_dir)
    if ctx.invoked_subcommand is None:
        console.print("BankGPT - Use --help to see available commands")


@app.command()
def init():
    """Initialize the BankGPT database."""
    try:
        db_path = _load_config().storage.db_path
        initialize_schema(db_path)
        initialize_cache_schema(db_path)
        console.print(f"[green]✓[/] Database initialized at {db_path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def chat(
    message: str = typer.Argument(..., help="Message for the advisor"),
    conversation_id: str = typer.Option(
        "cli",
        "--conversation-id",
        "-c",
        help="Conversation to continue"
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the response (or error) as a JSON object"
    )
):
    """Send one message to the advisor and print the reply."""
    try:
        advisor = _build_advisor(_load_config())
        response = advisor.chat(message, conversation_id)
    except InvalidRequest as e:
        _print_error("Invalid request", e, as_json)
        sys.exit(EXIT_CODE_INVALID)
    except BankGPTError as e:
        _print_error("Advisor error", e, as_json)
        sys.exit(EXIT_CODE_FAIL)
    except Exception as e:
        _print_error("Error", e, as_json)
        sys.exit(EXIT_CODE_FAIL)

    if as_json:
        typer.echo(json.dumps(response.to_dict()))
        sys.exit(EXIT_CODE_PASS)

    console.print(response.response_text)
    if response.cached:
        console.print("\n[dim](served from cache)[/]")
    elif response.degraded:
        console.print("\n[yellow](degraded response)[/]")
    else:
        console.print(
            f"\n[dim]{response.model} · {response.usage.prompt_tokens} prompt + "
            f"{response.usage.completion_tokens} completion tokens[/]"
        )
    sys.exit(EXIT_CODE_PASS)


def _print_error(label: str, error: Exception, as_json: bool) -> None:
    """Print an error, as {"error", "status"} JSON when requested."""
    if as_json:
        status = error.status_code if isinstance(error, BankGPTError) else BankGPTError.status_code
        typer.echo(json.dumps({"error": str(error), "status": status}))
    else:
        console.print(f"[red]{label}:[/] {str(error)}")


@app.command()
def reset(
    conversation_id: str = typer.Option(
        "cli",
        "--conversation-id",
        "-c",
        help="Conversation to clear"
    )
):
    """Clear a conversation's history."""
    try:
        advisor = _build_advisor(_load_config())
        removed = advisor.reset(conversation_id)
    except InvalidRequest as e:
        console.print(f"[red]Invalid request:[/] {str(e)}")
        sys.exit(EXIT_CODE_INVALID)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[green]✓[/] Removed {removed} turns from {conversation_id}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def health():
    """Report whether the completion endpoint, cache and store are reachable."""
    try:
        advisor = _build_advisor(_load_config())
        checks = advisor.health()
        info = advisor.info()
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title=f"{info['name']} {info['version']} ({info['model']})")
    table.add_column("Dependency")
    table.add_column("Status")
    for name, ok in checks.items():
        table.add_row(name, "[green]up[/]" if ok else "[red]down[/]")
    console.print(table)

    healthy = all(checks.values())
    console.print("Status: healthy" if healthy else "Status: unhealthy")
    sys.exit(EXIT_CODE_PASS if healthy else EXIT_CODE_FAIL)


@app.command()
def costs(
    days: int = typer.Option(
        1,
        "--days",
        "-d",
        help="Number of days to include"
    )
):
    """Summarize recorded usage and cost per model."""
    try:
        config = _load_config()
        stats = UsageRepository(config.storage.db_path).get_usage_stats(days=days)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not stats:
        console.print("\n[bold yellow]No usage recorded[/]")
        console.print("Run `bankgpt init`, then send messages with `bankgpt chat`.\n")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title=f"Usage over the last {days} day(s)")
    table.add_column("Model")
    table.add_column("Requests", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")

    total_cost = 0.0
    for model, row in stats.items():
        total_cost += row["total_cost"]
        table.add_row(
            model,
            f"{row['requests']:,}",
            f"{row['total_tokens']:,}",
            _format_currency(row["total_cost"])
        )
    console.print(table)

    budget = config.budget.daily * days
    console.print(f"Total: {_format_currency(total_cost)} of {_format_currency(budget)} budget "
                  f"({_format_percent(total_cost, budget)})")
    sys.exit(EXIT_CODE_PASS)


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.4f}"


def _format_percent(part: float, whole: float) -> str:
    if whole == 0:
        return "N/A"
    return f"{part / whole * 100:,.1f}%"


if __name__ == "__main__":
    app()
