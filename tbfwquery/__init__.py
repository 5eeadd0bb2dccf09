__version__ = "1.0"
__date__ = "2020.02.24"

import tbfwquery.cmd
import tbfwquery.logger

from tbfwquery.database import FirmwareDatabase
from tbfwquery.exc import (
    TbfwException,
    MalformedVersion,
    MountError,
    MountTrackingError,
    ResolutionError,
    MissingSystemImage,
    VersionNotFound,
    ExtractionError,
    PackageNotFound,
    ExpansionFailed,
    UpdaterNotFound,
    DescriptorError,
    DatabaseException,
    LoadError,
    SaveError,
    SettingsError,
)
from tbfwquery.firmware import BoardID, FirmwareConfig, FirmwareInfo, FirmwareRecords
from tbfwquery.installer import Installer
from tbfwquery.logger import Verbosity, setup_logger
from tbfwquery.mount import MountBroker, MountHandle
from tbfwquery.query import (
    FirmwareQuery,
    QueryOption,
    QueryResult,
    create_query,
    create_queries,
    run_queries,
)
from tbfwquery.settings import Settings as Settings
from tbfwquery.version import SystemVersion, compare
from tbfwquery.writer import IndentingWriter, Printable, StringWriter

# Must be *last*
from tbfwquery.app import app

__all__ = [
    # From app.py
    "app",
    # From database.py
    "FirmwareDatabase",
    # From exc.py
    "TbfwException",
    "MalformedVersion",
    "MountError",
    "MountTrackingError",
    "ResolutionError",
    "MissingSystemImage",
    "VersionNotFound",
    "ExtractionError",
    "PackageNotFound",
    "ExpansionFailed",
    "UpdaterNotFound",
    "DescriptorError",
    "DatabaseException",
    "LoadError",
    "SaveError",
    "SettingsError",
    # From firmware.py
    "BoardID",
    "FirmwareConfig",
    "FirmwareInfo",
    "FirmwareRecords",
    # From installer.py
    "Installer",
    # From logger.py
    "Verbosity",
    "setup_logger",
    # From mount.py
    "MountBroker",
    "MountHandle",
    # From query.py
    "FirmwareQuery",
    "QueryOption",
    "QueryResult",
    "create_query",
    "create_queries",
    "run_queries",
    # From settings.py
    "Settings",
    # From version.py
    "SystemVersion",
    "compare",
    # From writer.py
    "IndentingWriter",
    "Printable",
    "StringWriter",
]
