"""
macOS installer applications.

Layout of an installer app:

    Install macOS Catalina.app/
        Contents/SharedSupport/InstallESD.dmg
        Contents/SharedSupport/BaseSystem.dmg     (10.13 and later)

Before macOS 10.13, `BaseSystem.dmg` is stored at the root of `InstallESD.dmg`.
"""
from __future__ import annotations

import dataclasses
import logging
import pathlib
from typing import Optional

from tbfwquery.exc import MalformedVersion, MissingSystemImage, MountError, VersionNotFound
from tbfwquery.mount import MountBroker
from tbfwquery.version import SystemVersion


logger: logging.Logger = logging.getLogger(__name__)

SHARED_SUPPORT: str = "Contents/SharedSupport"

INSTALL_ESD: str = f"{SHARED_SUPPORT}/InstallESD.dmg"
"""Image holding the installation packages"""

BASE_SYSTEM: str = f"{SHARED_SUPPORT}/BaseSystem.dmg"
"""Image of the recovery system, holds the version descriptor"""

NESTED_BASE_SYSTEM: str = "BaseSystem.dmg"
"""Location of the base system inside InstallESD.dmg (before 10.13)"""


def read_base_system_version(
    base_system: pathlib.Path, broker: MountBroker
) -> Optional[SystemVersion]:
    """Read the system version of a BaseSystem.dmg

    The image is mounted for the duration of the read only.

    Returns:
        The version, or None if the image is missing, cannot be mounted or has no
        valid version descriptor
    """
    if not base_system.exists():
        logger.info("Cannot locate %s", base_system)
        return None

    try:
        mount_point = broker.acquire_exclusive(base_system)
    except MountError as e:
        logger.error("Failed to mount %s: %s", base_system.name, e)
        return None

    try:
        return SystemVersion.from_mount_point(mount_point)
    except MalformedVersion as e:
        logger.warning("No version descriptor in %s: %s", base_system.name, e)
        return None
    finally:
        broker.release_exclusive(mount_point)


def read_install_esd_version(
    install_esd: pathlib.Path, broker: MountBroker
) -> Optional[SystemVersion]:
    """Read the system version from the base system nested in InstallESD.dmg

    Returns:
        The version or None
    """
    try:
        mount_point = broker.acquire_exclusive(install_esd)
    except MountError as e:
        logger.error("Failed to mount %s: %s", install_esd.name, e)
        return None

    try:
        return read_base_system_version(mount_point / NESTED_BASE_SYSTEM, broker)
    finally:
        broker.release_exclusive(mount_point)


@dataclasses.dataclass(frozen=True)
class Installer:
    """A macOS installer app

    Attributes:
        version: Version of the installed system
        path: Path towards the installer app
    """

    version: SystemVersion
    path: pathlib.Path

    @property
    def install_esd(self) -> pathlib.Path:
        return self.path / INSTALL_ESD

    @property
    def base_system(self) -> pathlib.Path:
        return self.path / BASE_SYSTEM

    @classmethod
    def resolve(cls, installer_path: pathlib.Path, broker: MountBroker) -> Installer:
        """Find the version of the installer at `installer_path`

        The version is read from Contents/SharedSupport/BaseSystem.dmg and, for older
        installers, from the BaseSystem.dmg nested in InstallESD.dmg.

        Args:
            installer_path: Path towards the installer app
            broker: Mount broker

        Raises:
            MissingSystemImage if the installer has no InstallESD.dmg
            VersionNotFound if no version could be read

        Returns:
            The resolved installer
        """
        installer_path = pathlib.Path(installer_path)
        install_esd = installer_path / INSTALL_ESD

        if not install_esd.exists():
            raise MissingSystemImage(f"Cannot find the InstallESD.dmg in {installer_path}")

        version = read_base_system_version(installer_path / BASE_SYSTEM, broker)
        if version is not None:
            return cls(version, installer_path)

        logger.info("Will try to find BaseSystem.dmg under InstallESD.dmg")

        version = read_install_esd_version(install_esd, broker)
        if version is not None:
            return cls(version, installer_path)

        raise VersionNotFound(f"Failed to find the version of {installer_path}")

    def __str__(self) -> str:
        return f"{self.path.name} ({self.version.short_name})"
