import asyncio
import json

import rich
import typer

from retrypubsub.__about__ import __version__
from retrypubsub.cli.options import (
    AppArgument,
    AppLogLevelOption,
    AppLogSerializeOption,
    AppVersionOption,
    AttributeOption,
    AutocreateOption,
    MessageOption,
    ProjectIdOption,
    TopicOption,
)
from retrypubsub.cli.utils import (
    LogLevels,
    ensure_pubsub_credentials,
    get_log_level,
    import_subscriber,
    install_signal_handlers,
    parse_attributes,
)
from retrypubsub.clients.pubsub import PubSubClient
from retrypubsub.exceptions import RetryPubSubCLIException
from retrypubsub.logger import configure_logger, logger
from retrypubsub.pubsub.publisher import Publisher

app = typer.Typer(
    name="retrypubsub",
    help="A CLI to run RetryPubSub subscribers and publish messages to Pub/Sub.",
    pretty_exceptions_short=True,
    invoke_without_command=True,
    rich_markup_mode="markdown",
)


@app.callback()
def main(
    ctx: typer.Context,
    version: AppVersionOption = False,
) -> None:
    """
    Display helpful tips when the main command is run without any subcommands.
    """
    if version:
        import platform

        typer.echo(
            f"Running RetryPubSub {__version__} with {platform.python_implementation()} "
            f"{platform.python_version()} on {platform.system()}",
        )

        raise typer.Exit

    if ctx.invoked_subcommand is None:
        rich.print("\n[bold]Welcome to the RetryPubSub CLI![/bold]")
        rich.print("\n[dim]Run Pub/Sub subscribers with counted retries and dead-letters.[/dim]")
        rich.print("\n[bold]Usage[/bold]: [cyan]retrypubsub [COMMAND] [ARGS]...[/cyan]")
        rich.print("\n[bold]Common Commands:[/bold]")
        rich.print("  [green]run[/green]      Run a RetryPubSub subscriber.")
        rich.print("  [green]publish[/green]  Publish a JSON message to a topic.")
        rich.print("  [green]help[/green]     Get detailed help for a command.")
        rich.print(
            "\nRun '[cyan]retrypubsub --help[/cyan]' for "
            "a list of all available commands and options."
        )


@app.command()
def run(
    app: AppArgument,
    log_level: AppLogLevelOption = LogLevels.INFO,
    log_serialize: AppLogSerializeOption = False,
) -> None:
    """
    Run a subscriber until it receives SIGINT or SIGTERM.
    """
    ensure_pubsub_credentials()
    configure_logger(logger, level=get_log_level(log_level), serialize=log_serialize)

    subscriber = import_subscriber(app)
    install_signal_handlers(subscriber)
    subscriber.run()


@app.command()
def publish(
    project_id: ProjectIdOption,
    topic: TopicOption,
    message: MessageOption,
    attribute: AttributeOption = None,
    autocreate: AutocreateOption = True,
) -> None:
    """
    Publish a single JSON message to a topic.
    """
    ensure_pubsub_credentials()

    try:
        payload = json.loads(message)
    except json.JSONDecodeError as e:
        raise RetryPubSubCLIException(
            f"Invalid JSON format provided for message: {message}. Details: {e}"
        ) from e

    attributes = parse_attributes(attribute or [])
    publisher = Publisher(PubSubClient(project_id=project_id))
    message_id = asyncio.run(
        publisher.publish(
            topic,
            data=json.dumps(payload, separators=(",", ":")),
            attributes=attributes,
            autocreate=autocreate,
        )
    )
    rich.print(f"Published message [green]{message_id}[/green] to [cyan]{topic}[/cyan]")


@app.command(name="help")
def show_help(ctx: typer.Context) -> None:
    """
    Show this message and exit.
    """
    if ctx.parent:
        rich.print(ctx.parent.get_help())


def execute_app() -> None:
    app()


if __name__ == "__main__":
    execute_app()
