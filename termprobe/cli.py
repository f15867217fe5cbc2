import argparse
import json
import logging
import signal
import sys

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from termprobe.cancellation import CancellationToken
from termprobe.config import load_config, resolve_provider
from termprobe.executor import ShellExecutor
from termprobe.models import OrchestrationResult
from termprobe.orchestrator import CommandOrchestrator
from termprobe.planner import LLMPlanner
from termprobe.system_info import gather_system_context

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(name)s: %(message)s",
    )
    # Suppress noisy client logs in normal operation
    for name in ("anthropic", "openai", "httpx", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


class TermprobeCLI:
    def __init__(self, console: Console = console):
        self.console = console

    def _print_error(self, message: str):
        self.console.print(f"[bold red]❌ Error:[/bold red] {message}")

    def print_result(self, result: OrchestrationResult) -> None:
        """Print a condensed summary: query, commands run, answer."""
        q_display = result.question[:80] + "..." if len(result.question) > 80 else result.question
        self.console.print()
        self.console.print(Panel(
            f"[bold]{q_display}[/bold]",
            title="[bold white on blue] 🔍 Query [/bold white on blue]",
            title_align="left",
            border_style="blue",
            padding=(0, 1),
            expand=False,
        ))

        if result.results:
            table = Table(show_header=False, box=box.SIMPLE, padding=(0, 1), expand=True)
            table.add_column("", style="dim")
            for entry in result.results[:8]:
                cmd = entry.command[:60] + "..." if len(entry.command) > 60 else entry.command
                if entry.skipped:
                    table.add_row(f"[red]✗ {cmd} ({entry.error})[/red]")
                elif entry.error:
                    table.add_row(f"[yellow]⚠ {cmd}[/yellow]")
                else:
                    table.add_row(f"$ {cmd}")
            if len(result.results) > 8:
                table.add_row(f"[dim]... and {len(result.results) - 8} more commands[/dim]")
            self.console.print(Panel(
                table,
                title=f"[bold] 📊 Info Gathered ({len(result.results)} commands) [/bold]",
                title_align="left",
                border_style="dim",
                padding=(0, 0),
            ))

        if result.success and result.direct_answer:
            self.console.print(Panel(
                result.direct_answer,
                title="[bold white on green] 💡 Answer [/bold white on green]",
                title_align="left",
                border_style="green",
                padding=(1, 2),
            ))
        elif result.cancelled:
            self.console.print(f"[yellow]⚠ {result.error}[/yellow]")
        else:
            self._print_error(result.error or "No answer produced")

        self.console.print(
            f"[dim]{result.iterations} iteration(s), {result.ai_calls} planner call(s), "
            f"{result.duration_ms} ms[/dim]"
        )

    def ask(self, args: argparse.Namespace) -> int:
        try:
            config = load_config(
                path=args.config,
                max_iterations=args.max_iterations,
                max_execution_time_ms=args.max_time,
                verbose_logging=True if args.verbose else None,
            )
        except ValueError as e:
            self._print_error(str(e))
            return 1

        provider, api_key = resolve_provider(provider=args.provider)
        if provider in ("claude", "openai") and not api_key:
            self._print_error(
                "API key not found. Set ANTHROPIC_API_KEY or OPENAI_API_KEY environment variable."
            )
            return 1

        planner = LLMPlanner(api_key=api_key, provider=provider, model=args.model)
        orchestrator = CommandOrchestrator(planner, ShellExecutor(timeout=args.command_timeout), config)

        token = CancellationToken()
        previous = signal.signal(signal.SIGINT, lambda signum, frame: token.cancel())
        try:
            result = orchestrator.orchestrate(args.question, gather_system_context(), token)
        except ValueError as e:
            self._print_error(str(e))
            return 1
        finally:
            signal.signal(signal.SIGINT, previous)

        if args.json:
            print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        else:
            self.print_result(result)

        if result.cancelled:
            return 130
        return 0 if result.success else 1

    def show_config(self, args: argparse.Namespace) -> int:
        try:
            config = load_config(path=args.config)
        except ValueError as e:
            self._print_error(str(e))
            return 1
        provider, _ = resolve_provider()
        table = Table(title="Effective configuration", box=box.SIMPLE)
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        for key, value in config.to_dict().items():
            table.add_row(key, str(value))
        table.add_row("provider", provider)
        self.console.print(table)
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="termprobe",
        description="Answer system questions by orchestrating diagnostic shell commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  termprobe ask "how many IPs are blocked by fail2ban"
  termprobe ask "which services failed to start" --verbose
  termprobe ask "list running containers" --json
  termprobe config

Environment Variables:
  ANTHROPIC_API_KEY   Anthropic API key for Claude
  OPENAI_API_KEY      OpenAI API key
  OLLAMA_HOST         Ollama server URL (default: http://localhost:11434)
  TERMPROBE_PROVIDER  Force a provider (claude, openai, ollama, fake)
        """,
    )
    parser.add_argument("--config", help="Path to YAML config file")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    ask_parser = subparsers.add_parser("ask", help="Ask a question about this system")
    ask_parser.add_argument("question", type=str, help="Question in natural language")
    ask_parser.add_argument(
        "--provider", choices=["claude", "openai", "ollama", "fake"], help="Planner provider"
    )
    ask_parser.add_argument("--model", help="Model name override")
    ask_parser.add_argument("--max-iterations", type=int, help="Maximum command executions")
    ask_parser.add_argument("--max-time", type=int, help="Time budget in milliseconds")
    ask_parser.add_argument(
        "--command-timeout", type=int, default=30, help="Per-command timeout in seconds"
    )
    ask_parser.add_argument("--verbose", "-v", action="store_true", help="Show loop progress")
    ask_parser.add_argument("--json", action="store_true", help="Print the raw result as JSON")

    subparsers.add_parser("config", help="Show effective configuration")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    _configure_logging(getattr(args, "verbose", False))
    cli = TermprobeCLI()

    try:
        if args.command == "ask":
            return cli.ask(args)
        elif args.command == "config":
            return cli.show_config(args)
        parser.print_help()
        return 1
    except KeyboardInterrupt:
        print("\n❌ Operation cancelled by user", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
