import enum
import logging
import pathlib
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger
import typer


class ColorFormatter(logging.Formatter):
    """Color formatter

    Nice formatter for Typer CLI.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a record for printing.

        Args:
            record: Record to format

        Returns:
            A nice looking string
        """
        level: int = record.levelno
        message: str = record.getMessage()

        if level >= logging.ERROR:
            if record.exc_info:
                return typer.style(
                    f"ERROR: {message:s}\n{self.formatException(record.exc_info)}",
                    fg=typer.colors.RED,
                )

            # Format: ERROR: {message:s}
            return typer.style(f"ERROR: {message:s}", fg=typer.colors.RED)

        elif level == logging.WARNING:
            # Format: WARNING: {message:s}
            return typer.style(f"WARNING: {message:s}", fg=typer.colors.YELLOW)

        elif level == logging.INFO:
            # Format : INFO: {message:s}
            return f" INFO: {message:s}"

        elif level >= logging.DEBUG:
            # Format : [funcName] - {pathname}:{lineno} - {message}
            return typer.style(
                f"[{record.funcName:^20}] - {record.pathname}:{record.lineno} - {message:s}",
                dim=True,
            )

        else:
            return typer.style(f"UNK: {message:s}")


class TyperHandler(logging.Handler):
    """Typer Handler - logging handler for Typer

    Based on a StreamHandler, but adapted for Typer. Records are written on stderr
    so the rendered documents on stdout stay clean.
    """

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a record (e.g. print it)

        Args:
            record: Record to emit
        """
        try:
            message: str = self.format(record)
            typer.echo(message, err=True)
        except Exception:
            self.handleError(record)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter keeping the origin of every record"""

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name


class Verbosity(enum.IntEnum):
    ERROR = logging.ERROR
    WARNING = logging.WARNING
    INFO = logging.INFO
    DEBUG = logging.DEBUG


def setup_logger(
    verbosity: Verbosity = Verbosity.INFO, json_log: Optional[pathlib.Path] = None
) -> None:
    """Install the Typer handler on the root logger.

    Args:
        verbosity: Level of the console output
        json_log: Optional. File receiving every record (down to DEBUG) as JSON lines
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(Verbosity.DEBUG if json_log is not None else verbosity)

    typer_handler: TyperHandler = TyperHandler()
    typer_handler.setFormatter(ColorFormatter())
    typer_handler.setLevel(verbosity)

    root_logger.handlers = [typer_handler]

    if json_log is not None:
        file_handler: logging.FileHandler = logging.FileHandler(
            filename=str(json_log), mode="a"
        )
        file_handler.setFormatter(CustomJsonFormatter("%(asctime)s %(message)s"))
        file_handler.setLevel(Verbosity.DEBUG)

        root_logger.addHandler(file_handler)
