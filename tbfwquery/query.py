"""
Thunderbolt firmware queries.

A query extracts the Thunderbolt firmware records of one installer:

    InstallESD.dmg/Packages/FirmwareUpdate.pkg
        Scripts/Tools/USBCUpdater/Mac-XXXXXXXX/Config.plist
        Scripts/Tools/USBCUpdater/Mac-XXXXXXXX/<firmware files>

Installers may also be found inside a container disk image. In that case every
query holds a shared reference on the container, which stays mounted until the
last query is done.
"""
from __future__ import annotations

import dataclasses
import logging
import pathlib
from multiprocessing.pool import ThreadPool
from typing import List, Optional, Protocol, Sequence

from tbfwquery.cmd import CommandError, Pkgutil
from tbfwquery.exc import (
    DescriptorError,
    ExpansionFailed,
    ExtractionError,
    MountTrackingError,
    PackageNotFound,
    ResolutionError,
    TbfwException,
    UpdaterNotFound,
)
from tbfwquery.firmware import CONFIG_FILE, FirmwareConfig, FirmwareRecords, render_records
from tbfwquery.fs import copy_tree, working_directory
from tbfwquery.installer import Installer
from tbfwquery.mount import MountBroker
from tbfwquery.settings import Settings
from tbfwquery.version import SystemVersion
from tbfwquery.writer import IndentingWriter, Printable


logger: logging.Logger = logging.getLogger(__name__)

FIRMWARE_UPDATE_PKG: str = "Packages/FirmwareUpdate.pkg"
"""Location of the firmware update package in InstallESD.dmg"""

USBC_UPDATER: str = "Scripts/Tools/USBCUpdater"
"""Location of the board-id directories in the expanded package"""


class Expander(Protocol):
    """Something able to expand a package (e.g. `Pkgutil`)"""

    def expand(self, package_path: pathlib.Path, destination: pathlib.Path) -> None:
        ...


@dataclasses.dataclass(frozen=True)
class QueryOption:
    """Query options

    Attributes:
        save_firmware_files: Copy the board-id directories to `output_directory`
        output_directory: Where to save the firmwares
    """

    save_firmware_files: bool = False
    output_directory: Optional[pathlib.Path] = None

    def __post_init__(self) -> None:
        if self.save_firmware_files and self.output_directory is None:
            raise ValueError("An output directory is required to save firmware files")

    @classmethod
    def saving_to(cls, output_directory: Optional[pathlib.Path]) -> QueryOption:
        """Save the firmwares when an output directory is given"""
        return cls(output_directory is not None, output_directory)


@dataclasses.dataclass
class QueryResult(Printable):
    """Records found in one installer"""

    version: SystemVersion
    records: FirmwareRecords

    def render(self, writer: IndentingWriter) -> None:
        writer.println(f"- {self.version.full_name}")
        with writer.indented():
            render_records(self.records, writer)


class FirmwareQuery:
    """Query the Thunderbolt firmwares of an installer

    A query runs only once.

    Args:
        installer: Resolved installer
        broker: Mount broker
        disk_image: Optional. Container disk image on which the query holds a shared
                    reference, released when the query has run
        expander: Optional. Package expander, defaults to pkgutil
    """

    def __init__(
        self,
        installer: Installer,
        broker: MountBroker,
        disk_image: Optional[pathlib.Path] = None,
        expander: Optional[Expander] = None,
    ) -> None:
        """Constructor"""
        self.installer: Installer = installer
        self.broker: MountBroker = broker
        self.disk_image: Optional[pathlib.Path] = disk_image
        self.expander: Optional[Expander] = expander

        self._has_run: bool = False

    def run(self, option: QueryOption = QueryOption()) -> QueryResult:
        """Perform the query

        Args:
            option: Query options

        Raises:
            MountError if InstallESD.dmg cannot be mounted
            ExtractionError if the firmware update package cannot be extracted

        Returns:
            The records found in the installer, by board-id
        """
        if self._has_run:
            raise ExtractionError(f"The query on {self.installer.path} already ran")
        self._has_run = True

        try:
            records = self._extract(option)
        finally:
            if self.disk_image is not None:
                self.broker.release(self.disk_image)

        return QueryResult(self.installer.version, records)

    def _extract(self, option: QueryOption) -> FirmwareRecords:
        version = self.installer.version

        logger.info("Installer: %s", self.installer.path)
        logger.info("Start to query Thunderbolt firmware on %s installer", version.full_name)
        logger.info("- Option: Save Firmwares: %s", "Yes" if option.save_firmware_files else "No")
        logger.info("- Option: Save Directory: %s", option.output_directory)

        output_directory: Optional[pathlib.Path] = None
        if option.save_firmware_files and option.output_directory is not None:
            output_directory = option.output_directory / version.key
            try:
                output_directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ExtractionError(
                    f"Failed to create the version directory {output_directory}: {e}"
                )

        logger.info("Mounting the InstallESD.dmg...")
        mount_point = self.broker.acquire_exclusive(self.installer.install_esd)

        try:
            package = mount_point / FIRMWARE_UPDATE_PKG
            if not package.exists():
                raise PackageNotFound(
                    f"Cannot find the FirmwareUpdate.pkg in the InstallESD.dmg of "
                    f"{self.installer.path}"
                )

            logger.info("Found FirmwareUpdate.pkg. Extracting the package...")
            with working_directory(prefix="FirmwareUpdate-") as directory:
                expanded = directory / "FirmwareUpdate"
                self._expand(package, expanded)
                logger.info("FirmwareUpdate.pkg has been extracted successfully")

                return self._gather(expanded / USBC_UPDATER, output_directory)
        finally:
            logger.info("Unmounting the InstallESD.dmg...")
            self.broker.release_exclusive(mount_point)

    def _expand(self, package: pathlib.Path, destination: pathlib.Path) -> None:
        expander = self.expander
        if expander is None:
            try:
                expander = Pkgutil(Settings.PKGUTIL)
            except CommandError as e:
                raise ExpansionFailed(str(e))

        try:
            expander.expand(package, destination)
        except CommandError as e:
            raise ExpansionFailed(f"Failed to expand the FirmwareUpdate.pkg: {e}")

    def _gather(
        self, updater: pathlib.Path, output_directory: Optional[pathlib.Path]
    ) -> FirmwareRecords:
        """Parse the configuration of every board-id directory

        Boards with a missing or invalid configuration are skipped.
        """
        if not updater.is_dir():
            raise UpdaterNotFound(f"Failed to locate the USBCUpdater directory in {self.installer.path}")

        machines = sorted(
            machine
            for machine in updater.iterdir()
            if machine.is_dir() and machine.name.startswith(Settings.BOARD_PREFIX)
        )

        logger.info("Found %d board ids in the USBCUpdater folder", len(machines))

        records: FirmwareRecords = {}
        for index, machine in enumerate(machines, start=1):
            board_id = machine.name
            logger.info(
                "[%d/%d] Gathering Thunderbolt firmware info of %s",
                index,
                len(machines),
                board_id,
            )

            try:
                config = FirmwareConfig.from_file(machine / CONFIG_FILE)
            except DescriptorError as e:
                logger.warning(
                    "Failed to parse the config for machine %s, will ignore this one: %s",
                    board_id,
                    e,
                )
                continue

            records[board_id] = config

            if output_directory is not None:
                copy_tree(machine, output_directory / board_id)

        return records

    def __repr__(self) -> str:
        return f"FirmwareQuery({self.installer})"


def create_query(
    installer_path: pathlib.Path,
    broker: MountBroker,
    expander: Optional[Expander] = None,
) -> FirmwareQuery:
    """Create a query on the installer app at `installer_path`

    Raises:
        ResolutionError if the installer is not valid
    """
    installer = Installer.resolve(installer_path, broker)
    return FirmwareQuery(installer, broker, expander=expander)


def create_queries(
    disk_image: pathlib.Path,
    broker: MountBroker,
    expander: Optional[Expander] = None,
) -> List[FirmwareQuery]:
    """Create queries on every installer app found in a disk image

    Each query keeps the disk image mounted until it has run.

    Raises:
        MountError if the disk image cannot be mounted
        ResolutionError if its content cannot be listed

    Returns:
        One query per valid installer
    """
    disk_image = pathlib.Path(disk_image)
    mount_point = broker.acquire_shared(disk_image)

    queries: List[FirmwareQuery] = []
    try:
        try:
            candidates = sorted(
                candidate
                for candidate in mount_point.iterdir()
                if candidate.suffix == ".app"
                and candidate.name.startswith(Settings.INSTALLER_PREFIX)
            )
        except OSError as e:
            raise ResolutionError(f"Failed to enumerate the content of {disk_image}: {e}")

        logger.info("Found %d installers in %s", len(candidates), disk_image.name)

        for candidate in candidates:
            try:
                installer = Installer.resolve(candidate, broker)
            except ResolutionError as e:
                logger.error(
                    "Failed to create the query, installer at %s might not be valid: %s",
                    candidate,
                    e,
                )
                continue

            broker.acquire_shared(disk_image)
            queries.append(FirmwareQuery(installer, broker, disk_image, expander))
    finally:
        broker.release(disk_image)

    return queries


def run_queries(
    queries: Sequence[FirmwareQuery],
    option: QueryOption = QueryOption(),
    workers: Optional[int] = None,
) -> List[QueryResult]:
    """Run queries in a thread pool

    A failed query is logged and does not stop the others.

    Args:
        queries: Queries to run
        option: Options for every query
        workers: Optional. Number of threads, defaults to `Settings.WORKERS`

    Returns:
        Results of the successful queries, in the order of `queries`
    """
    if workers is None:
        workers = Settings.WORKERS

    results: List[QueryResult] = []
    failed: int = 0

    with ThreadPool(processes=workers) as pool:
        pending = [(query, pool.apply_async(query.run, (option,))) for query in queries]

        for query, pending_result in pending:
            try:
                results.append(pending_result.get())
            except MountTrackingError:
                raise
            except TbfwException as e:
                logger.error("Query on %s failed: %s", query.installer.path, e)
                failed += 1
            except Exception as e:
                logger.error("Failed with unknown exception", exc_info=e)
                failed += 1

    if failed:
        logger.info("Failed to query %d/%d installers", failed, len(queries))

    return results
