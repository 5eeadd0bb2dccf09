import functools
import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Union


logger: logging.Logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=8)
def find_executable(cmd: str) -> Optional[str]:
    """Search for an executable in PATH"""
    return shutil.which(cmd)


class CommandError(Exception):
    """Error while running an external command

    Attributes:
        returncode: Exit status of the command, None if it could not run at all
    """

    def __init__(self, message: str, returncode: Optional[int] = None) -> None:
        super(CommandError, self).__init__(message)
        self.returncode: Optional[int] = returncode


class Command:
    """Command wrapper

    This wraps a command utility on the file system.

    Args:
        command_path: Optional. Path to the command
    """

    name: str
    """Name of the command"""

    command: str
    """Executable command (can be different from the name)"""

    error: type = CommandError
    """Exception raised by this command"""

    def __init__(self, command_path: Optional[Union[str, Path]] = None) -> None:
        """Constructor"""
        if command_path is None:
            command_path = self.name

        resolved = find_executable(str(command_path))
        if resolved is None:
            raise self.error(f"Unable to find binary {command_path}")

        self.command: str = resolved

    def run(self, args: List[str]) -> subprocess.CompletedProcess:
        """Run the command and wait for it to exit

        Args:
            args: List of arguments

        Raises:
            The command error if the process cannot be started

        Returns:
            Subprocess CompletedProcess
        """
        final_command: List[str] = [self.command, *args]
        logger.debug("Run %s", " ".join(final_command))

        try:
            result = subprocess.run(
                final_command, stderr=subprocess.PIPE, stdout=subprocess.PIPE
            )
        except OSError as e:
            raise self.error(f"Run: Unable to run the command {final_command}: {e}")

        return result

    def check(self, result: subprocess.CompletedProcess, message: str) -> None:
        """Raise the command error if `result` has a non-zero exit status"""
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise self.error(
                f"{message} (exit status {result.returncode}): {stderr}",
                returncode=result.returncode,
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.command})"
