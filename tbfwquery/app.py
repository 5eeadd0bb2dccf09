import logging
import pathlib
from typing import List, Optional

from typing_extensions import TypedDict
import typer

import tbfwquery


app = typer.Typer()

State = TypedDict(
    "State",
    {
        "logger": logging.Logger,
    },
    total=False,
)

state: State = {}


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"Version: {tbfwquery.__version__} @ {tbfwquery.__date__}")
        raise typer.Exit()


@app.command()
def create(
    database: pathlib.Path = typer.Argument(..., help="Path of the database to create"),
) -> None:
    """Create an empty database."""
    logger = state["logger"]

    try:
        tbfwquery.FirmwareDatabase.empty().save(database)
    except tbfwquery.SaveError as e:
        logger.error("Failed to create an empty database at %s: %s", database, e)
        raise typer.Exit(code=1)

    logger.info("An empty database is created at %s", database)


@app.command()
def query(
    installers: List[pathlib.Path] = typer.Argument(
        ...,
        exists=True,
        resolve_path=True,
        help="Installer apps, or disk images containing installer apps with --dmg",
    ),
    dmg: bool = typer.Option(
        False, "--dmg", help="Inputs are disk images that contain installer apps"
    ),
    database: Optional[pathlib.Path] = typer.Option(
        None, help="Add the results to this database instead of printing them"
    ),
    overwrite: bool = typer.Option(
        False, help="Results replace the records already in the database"
    ),
    output: Optional[pathlib.Path] = typer.Option(
        None, help="Copy the firmware files to this directory"
    ),
    workers: Optional[int] = typer.Option(
        None, min=1, help="Number of installers queried in parallel"
    ),
) -> None:
    """Query the Thunderbolt firmware info from installers.

    Without --database, the results are printed to stdout.
    """
    logger = state["logger"]

    # Load the database first so that nothing is queried for nothing
    firmware_database: Optional[tbfwquery.FirmwareDatabase] = None
    if database is not None:
        try:
            firmware_database = tbfwquery.FirmwareDatabase.load(database)
        except tbfwquery.LoadError as e:
            logger.error("%s", e)
            raise typer.Exit(code=1)

    try:
        broker = tbfwquery.MountBroker()
    except tbfwquery.MountError as e:
        logger.error("%s", e)
        raise typer.Exit(code=1)

    with broker:
        queries: List[tbfwquery.FirmwareQuery] = []
        failed: int = 0

        for installer in installers:
            try:
                if dmg:
                    found = tbfwquery.create_queries(installer, broker)
                    if not found:
                        failed += 1
                    queries.extend(found)
                else:
                    queries.append(tbfwquery.create_query(installer, broker))
            except tbfwquery.TbfwException as e:
                logger.error(
                    "Failed to create the query, installer at %s might not be valid: %s",
                    installer,
                    e,
                )
                failed += 1

        option = tbfwquery.QueryOption.saving_to(output)
        results = tbfwquery.run_queries(queries, option, workers=workers)
        failed += len(queries) - len(results)

    if firmware_database is None:
        writer = tbfwquery.StringWriter()
        for result in results:
            result.render(writer)
        typer.echo(writer.getvalue(), nl=False)
    else:
        for result in results:
            firmware_database.register(
                result.records, result.version.key, overwrite=overwrite
            )

        try:
            firmware_database.save(database)
        except tbfwquery.SaveError as e:
            logger.error("%s", e)
            raise typer.Exit(code=1)

        logger.info("The new database has been saved to %s", database)

    if failed:
        raise typer.Exit(code=1 if not results else 2)


@app.command()
def markdown(
    database: pathlib.Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="Firmware database"
    ),
    output: Optional[pathlib.Path] = typer.Argument(
        None, help="Markdown document, printed to stdout if not set"
    ),
) -> None:
    """Generate the Markdown document from a database."""
    logger = state["logger"]

    try:
        firmware_database = tbfwquery.FirmwareDatabase.load(database)
    except tbfwquery.LoadError as e:
        logger.error("%s", e)
        raise typer.Exit(code=1)

    if output is None:
        typer.echo(firmware_database.to_string(), nl=False)
        return

    try:
        firmware_database.generate_markdown(output)
    except OSError as e:
        logger.error("Failed to generate the Markdown document: %s", e)
        raise typer.Exit(code=1)

    logger.info("The Markdown document has been generated from the database")


@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Activate debug output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Silence output"),
    json_log: Optional[pathlib.Path] = typer.Option(
        None, "--json-log", help="Also log every record as JSON in this file"
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Print the current version",
    ),
) -> None:
    """
    Thunderbolt Firmware Query - Extract Thunderbolt firmware info from macOS installers
    """

    verbosity = tbfwquery.logger.Verbosity.INFO
    if debug:
        verbosity = tbfwquery.logger.Verbosity.DEBUG
    elif quiet:
        verbosity = tbfwquery.logger.Verbosity.ERROR

    tbfwquery.logger.setup_logger(verbosity, json_log=json_log)
    state["logger"] = logging.getLogger()

    try:
        tbfwquery.Settings.update_settings()
    except tbfwquery.SettingsError as e:
        state["logger"].error("%s", e)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    import warnings

    warnings.warn(
        "use 'python -m tbfwquery', not 'python -m tbfwquery.app'", DeprecationWarning
    )
    app()
