from typing import Annotated

import typer

from retrypubsub.cli.utils import LogLevels

AppArgument = Annotated[
    str,
    typer.Argument(
        help="The subscriber to run, in the format '[bold]module:attribute[/bold]'.",
        show_default=False,
    ),
]

AppVersionOption = Annotated[
    bool,
    typer.Option("--version", "-v", help="Show the version and exit.", is_eager=True),
]

AppLogLevelOption = Annotated[
    LogLevels,
    typer.Option(
        "--log-level",
        case_sensitive=False,
        help="The level of the application logs.",
    ),
]

AppLogSerializeOption = Annotated[
    bool,
    typer.Option(
        "--log-serialize",
        envvar="RETRYPUBSUB_ENABLE_LOG_SERIALIZE",
        help="Write the logs as JSON lines.",
    ),
]

ProjectIdOption = Annotated[
    str,
    typer.Option(
        "--project-id",
        "-p",
        envvar="RETRYPUBSUB_PROJECT_ID",
        help="The Google Cloud project of the topic.",
        show_default=False,
    ),
]

TopicOption = Annotated[
    str,
    typer.Option("--topic", "-t", help="The topic to publish to.", show_default=False),
]

MessageOption = Annotated[
    str,
    typer.Option("--message", "-m", help="The message body. Must be a valid JSON string."),
]

AttributeOption = Annotated[
    list[str] | None,
    typer.Option(
        "--attribute",
        "-a",
        help="A message attribute as 'key=value'. Can be repeated.",
        show_default=False,
    ),
]

AutocreateOption = Annotated[
    bool,
    typer.Option("--autocreate/--no-autocreate", help="Create the topic when it is absent."),
]
