"""
CLI interface for AI Optimizer.

Inspect pricing, render prompt templates, estimate token savings and try the
local fallbacks on a file without calling any provider.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from ai_optimizer.config.loader import load_optimizer_config, load_or_default
from ai_optimizer.core.context import OptimizationContext
from ai_optimizer.core.fallbacks import (
    check_text_complexity,
    extract_keywords,
    simple_question_generation,
    simple_summarize,
)
from ai_optimizer.core.prompts import (
    PROMPT_TEMPLATES,
    VERSIONS,
    compare_prompts,
    get_optimized_prompt,
    select_prompt_version,
)
from ai_optimizer.core.token_counter import estimate_tokens

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """AI Optimizer CLI."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    if ctx.invoked_subcommand is None:
        console.print("AI Optimizer - Use --help to see available commands")


@app.command()
def pricing(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="YAML config with pricing overrides")
):
    """Show the per-model cost table (USD per 1K tokens)."""
    try:
        context = OptimizationContext.from_config(load_or_default(config))
    except (OSError, yaml.YAMLError, ValueError) as e:
        console.print(f"[red]Error loading config:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Model pricing (USD / 1K tokens)")
    table.add_column("Model")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    for model in context.monitor.pricing.models():
        rates = context.monitor.pricing.get_pricing(model)
        table.add_row(model, f"{rates.input_per_1k}", f"{rates.output_per_1k}")
    console.print(table)


def _parse_vars(pairs: List[str]) -> dict:
    variables = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid variable {pair!r}; expected key=value")
        variables[key] = value
    return variables


@app.command()
def prompt(
    feature: str = typer.Argument(..., help=f"One of: {', '.join(PROMPT_TEMPLATES)}"),
    var: List[str] = typer.Option([], "--var", help="Template variable as key=value (repeatable)"),
    text_file: Optional[Path] = typer.Option(None, "--text-file", "-t", help="Read the 'text' variable from a file"),
    version: Optional[str] = typer.Option(None, "--version", help=f"One of: {', '.join(VERSIONS)}; picked from text size if omitted"),
):
    """Render an optimized prompt template."""
    try:
        variables = _parse_vars(var)
        if text_file is not None:
            variables["text"] = text_file.read_text(encoding="utf-8")
        chosen = version or select_prompt_version(str(variables.get("text", "")), feature)
        rendered = get_optimized_prompt(feature, variables, chosen)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[dim]version={chosen} ~{estimate_tokens(rendered)} tokens[/]")
    # plain print so rich markup in the template is left untouched
    print(rendered)


@app.command()
def estimate(
    original: Path = typer.Argument(..., help="File with the original prompt"),
    optimized: Path = typer.Argument(..., help="File with the optimized prompt"),
):
    """Compare estimated token counts of two prompts."""
    try:
        comparison = compare_prompts(
            original.read_text(encoding="utf-8"),
            optimized.read_text(encoding="utf-8"),
        )
    except OSError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"Original tokens:  {comparison.original_tokens:,}")
    console.print(f"Optimized tokens: {comparison.optimized_tokens:,}")
    console.print(f"Savings:          {comparison.savings:,} ({comparison.percentage}%)")


@app.command()
def analyze(
    path: Path = typer.Argument(..., help="Text file to analyze"),
    sentences: int = typer.Option(3, "--sentences", help="Sentences in the local summary"),
    keywords: int = typer.Option(5, "--keywords", help="Number of keywords"),
):
    """Classify a text and run the local (non-AI) fallbacks on it."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    complexity = check_text_complexity(text)
    verdict = "[green]simple[/]" if complexity.is_simple else "[yellow]needs AI[/]"
    console.print(f"\n[bold]Complexity:[/bold] {verdict} "
                  f"({complexity.word_count} words, {complexity.sentence_count} sentences)")
    console.print(f"Prompt tier: {select_prompt_version(text)}")
    console.print(f"Estimated tokens: {estimate_tokens(text):,}")

    table = Table(title="Local fallbacks")
    table.add_column("Operation")
    table.add_column("Result")
    for name, result in (
        ("summary", simple_summarize(text, sentences)),
        ("keywords", extract_keywords(text, keywords)),
        ("questions", simple_question_generation(text)),
    ):
        if result.success:
            data = result.data if isinstance(result.data, str) else "\n".join(result.data)
            table.add_row(name, data)
        else:
            table.add_row(name, f"[dim]{result.reason}[/]")
    console.print(table)


@app.command("check-config")
def check_config(path: str = typer.Argument(..., help="YAML configuration file")):
    """Validate an optimizer configuration file."""
    try:
        config = load_optimizer_config(path)
    except (OSError, yaml.YAMLError, ValueError) as e:
        console.print(f"[red]Invalid configuration:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    console.print("[green]✓[/] Configuration is valid")
    console.print(f"Cache: ttl={config.cache.default_ttl_ms}ms max_size={config.cache.max_size}")
    console.print(f"Rate limit overrides: {', '.join(config.rate_limits) or 'none'}")
    console.print(f"Pricing overrides: {', '.join(config.pricing) or 'none'}")
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
