"""File system helpers"""

import contextlib
import logging
import pathlib
import shutil
import tempfile
from typing import Iterator, Optional

from tbfwquery.settings import Settings


logger: logging.Logger = logging.getLogger(__name__)


def random_temporary_directory(prefix: str = "tbfwquery-") -> pathlib.Path:
    """Create a fresh directory under the temporary directory

    Args:
        prefix: Prefix of the directory name

    Returns:
        Path towards the new (empty) directory
    """
    Settings.TEMPORARY_DIRECTORY.mkdir(parents=True, exist_ok=True)
    directory = tempfile.mkdtemp(prefix=prefix, dir=Settings.TEMPORARY_DIRECTORY)
    return pathlib.Path(directory).absolute()


def remove_directory(directory: pathlib.Path) -> bool:
    """Remove an empty directory, e.g. a mount point once detached.

    Returns:
        True if the directory is gone
    """
    try:
        directory.rmdir()
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.debug("Unable to remove %s: %s", directory, e)
        return False

    return True


def copy_tree(source: pathlib.Path, destination: pathlib.Path) -> Optional[pathlib.Path]:
    """Copy the directory `source` as `destination`

    Symlinks are copied as symlinks.

    Returns:
        The destination, or None if the copy failed
    """
    try:
        shutil.copytree(source, destination, symlinks=True)
    except (OSError, shutil.Error) as e:
        logger.warning("Unable to copy %s to %s: %s", source, destination, e)
        return None

    return destination


@contextlib.contextmanager
def working_directory(prefix: str = "tbfwquery-") -> Iterator[pathlib.Path]:
    """Temporary directory removed with its content at the end of the block"""
    directory = random_temporary_directory(prefix=prefix)
    try:
        yield directory
    finally:
        shutil.rmtree(directory, ignore_errors=True)
        if directory.exists():
            logger.warning("Unable to remove the working directory %s", directory)
