"""
Thunderbolt firmware database.

The database maps a version key ("10.15.3_19D76") to the firmware records of the
installer of that version. It is stored as an XML property list:

    {"data": {"10.15.3_19D76": {"Mac-XXXXXXXX": {"firmwares": [...]}}}}
"""
from __future__ import annotations

import logging
import os
import pathlib
import plistlib
import stat
import tempfile
import threading
import xml.parsers.expat
from typing import Any, Dict, Iterator, List, Optional, Tuple

from tbfwquery.exc import DescriptorError, LoadError, MalformedVersion, SaveError
from tbfwquery.firmware import FirmwareRecords, records_from_dict, records_to_dict, render_records
from tbfwquery.version import SystemVersion
from tbfwquery.writer import IndentingWriter, Printable, StringWriter


logger: logging.Logger = logging.getLogger(__name__)

DATA_KEY: str = "data"

TITLE: str = "## Thunderbolt Firmware Database"


def _file_mode(file_path: pathlib.Path) -> int:
    """Permissions of `file_path`, or the default ones for a new file"""
    try:
        return stat.S_IMODE(file_path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


class FirmwareDatabase(Printable):
    """A lightweight database of Thunderbolt firmware records

    Every access goes through a single lock, so records may be registered from
    several query threads.
    """

    def __init__(self, data: Optional[Dict[str, FirmwareRecords]] = None) -> None:
        """Constructor"""
        self._data: Dict[str, FirmwareRecords] = dict(data) if data else {}
        self._lock = threading.Lock()

    @classmethod
    def empty(cls) -> FirmwareDatabase:
        return cls()

    @classmethod
    def load(cls, file_path: pathlib.Path) -> FirmwareDatabase:
        """Load a database from the disk

        Args:
            file_path: Path towards the database

        Raises:
            LoadError if the file cannot be read or decoded
        """
        try:
            with open(file_path, "rb") as file:
                plist: Any = plistlib.load(file)
        except (
            OSError,
            plistlib.InvalidFileException,
            xml.parsers.expat.ExpatError,
            ValueError,
        ) as e:
            raise LoadError(f"Failed to load the database from {file_path}: {e}")

        if not isinstance(plist, dict) or not isinstance(plist.get(DATA_KEY), dict):
            raise LoadError(f"Failed to load the database from {file_path}: no data")

        try:
            data = {
                str(key): records_from_dict(records)
                for key, records in plist[DATA_KEY].items()
            }
        except DescriptorError as e:
            raise LoadError(f"Failed to load the database from {file_path}: {e}")

        return cls(data)

    def save(self, file_path: pathlib.Path) -> None:
        """Write the database on the disk

        The database is written next to `file_path` then moved over it, so an
        interrupted save leaves the previous file untouched.

        Raises:
            SaveError if the database cannot be written
        """
        file_path = pathlib.Path(file_path)
        plist = {DATA_KEY: self._encode()}

        temporary: Optional[str] = None
        try:
            file_descriptor, temporary = tempfile.mkstemp(
                prefix=f".{file_path.name}.", dir=file_path.parent.absolute()
            )
            with os.fdopen(file_descriptor, "wb") as file:
                plistlib.dump(plist, file, fmt=plistlib.FMT_XML, sort_keys=True)
                file.flush()
                os.fsync(file.fileno())

            # mkstemp creates the file owner-only
            os.chmod(temporary, _file_mode(file_path))
            os.replace(temporary, file_path)
        except (OSError, TypeError, OverflowError) as e:
            if temporary is not None and os.path.exists(temporary):
                os.unlink(temporary)
            raise SaveError(f"Failed to save the database to {file_path}: {e}")

    def _encode(self) -> Dict[str, Any]:
        with self._lock:
            return {key: records_to_dict(records) for key, records in self._data.items()}

    def register(self, records: FirmwareRecords, version: str, overwrite: bool = False) -> bool:
        """Register records under an installer version

        Existing records for `version` are kept, unless `overwrite` is set: they are
        then replaced as a whole.

        Args:
            records: Firmware configs by board-id
            version: Version key of the installer
            overwrite: Replace the existing records

        Returns:
            True if the database changed
        """
        with self._lock:
            if version in self._data and not overwrite:
                logger.info("Keep the existing records of %s", version)
                return False

            self._data[version] = dict(records)
            return True

    def snapshot(self) -> Dict[str, FirmwareRecords]:
        """Copy of the content"""
        with self._lock:
            return {key: dict(records) for key, records in self._data.items()}

    def get(self, version: str) -> Optional[FirmwareRecords]:
        with self._lock:
            records = self._data.get(version)
            return dict(records) if records is not None else None

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data)

    def __contains__(self, version: object) -> bool:
        with self._lock:
            return version in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FirmwareDatabase):
            return NotImplemented
        return self.snapshot() == other.snapshot()

    def sorted_versions(self) -> List[Tuple[SystemVersion, FirmwareRecords]]:
        """Records by ascending version. Malformed version keys are skipped."""
        versions: List[Tuple[SystemVersion, FirmwareRecords]] = []
        for key, records in self.snapshot().items():
            try:
                versions.append((SystemVersion.from_key(key), records))
            except MalformedVersion:
                logger.warning("Found a malformed version string: %s", key)

        versions.sort(key=lambda item: item[0])
        return versions

    def render(self, writer: IndentingWriter) -> None:
        writer.println(TITLE)

        for version, records in self.sorted_versions():
            writer.println(f"- {version.full_name}")
            with writer.indented():
                render_records(records, writer)

    def generate_markdown(self, file_path: pathlib.Path) -> None:
        """Write the Markdown document of the database

        Raises:
            OSError if the document cannot be written
        """
        writer = StringWriter()
        self.render(writer)
        pathlib.Path(file_path).write_text(writer.getvalue(), encoding="utf-8")

    def __repr__(self) -> str:
        return f"FirmwareDatabase({len(self)} versions)"

