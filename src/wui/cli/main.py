import os
import click
from rich import print
from rich.console import Console

from wui import __version__
from wui.commands import effective_filter
from wui.model import BackendError, TaskwarriorClient
from wui.state import initial_state
from wui.wui_env import WuiEnvironment, render_config

VERSION = __version__


def make_client(config) -> TaskwarriorClient:
    return TaskwarriorClient(config.task_bin, config.taskrc_path)


def run_ui(ctx, search: str = ""):
    from wui.view import WuiApp

    config = ctx.obj["CONFIG"]
    state = initial_state(config, search_filter=search)
    WuiApp(state, make_client(config)).run()


@click.group(invoke_without_command=True)
@click.version_option(VERSION, prog_name="wui", message="%(prog)s version %(version)s")
@click.option(
    "--home",
    help="Override the wui config directory (equivalent to setting $WUI_HOME).",
)
@click.option(
    "--search",
    "-s",
    default="",
    help="Open the Search tab with this filter applied.",
)
@click.pass_context
def cli(ctx, home, search):
    """wui – a terminal interface for taskwarrior."""
    if home:
        os.environ["WUI_HOME"] = home  # Must be set before WuiEnvironment is instantiated

    env = WuiEnvironment()
    env.ensure(init_config=True)
    config = env.load_config()

    ctx.ensure_object(dict)
    ctx.obj["ENV"] = env
    ctx.obj["CONFIG"] = config

    if ctx.invoked_subcommand is None:
        run_ui(ctx, search)


@cli.command()
@click.option("--search", "-s", default="", help="Initial Search tab filter.")
@click.pass_context
def ui(ctx, search):
    """Start the interactive interface."""
    run_ui(ctx, search)


@cli.command()
@click.pass_context
def config(ctx):
    """Show the config file location and its current values."""
    env = ctx.obj["ENV"]
    print(f"[bold]config:[/bold] {env.config_path}")
    print(f"[bold]logs:[/bold]   {env.log_dir}")
    click.echo()
    click.echo(render_config(ctx.obj["CONFIG"]), nl=False)


@cli.command()
@click.argument("filter_words", nargs=-1, required=True)
@click.option(
    "--all",
    "all_statuses",
    is_flag=True,
    help="Include every status, as the Search tab does.",
)
@click.pass_context
def export(ctx, filter_words, all_statuses):
    """Print the tasks matching FILTER as a markdown checklist."""
    client = make_client(ctx.obj["CONFIG"])
    filter_text = effective_filter(" ".join(filter_words), all_statuses)
    try:
        tasks = client.export(filter_text)
    except BackendError as e:
        Console(stderr=True).print(f"[red]✘[/red] {e}")
        ctx.exit(1)
    if not tasks:
        print("[yellow]No matching tasks.[/yellow]")
        return
    click.echo("\n".join(task.to_markdown() for task in tasks))


if __name__ == "__main__":
    cli()
