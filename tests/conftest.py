"""Fixtures for tbfwquery tests.

Disk images and packages are plain directories: attaching an image copies its
content on the mount point, expanding a package copies the package directory.
"""

import pathlib
import plistlib
import shutil
import threading
from typing import Any, Dict, List, Optional

import pytest

from tbfwquery.cmd import HdiutilError, PkgutilError
from tbfwquery.mount import MountBroker
from tbfwquery.settings import Settings


RIDGE_FIRMWARE: Dict[str, Any] = {
    "Firmware": "FW1",
    "Version": 1.0,
    "Ridge Silicon Vendor ID": 0x8086,
    "Ridge Silicon Device ID": 0x1,
    "Ridge Silicon Revision": 1,
}


class FakeMounter:
    """Directory-backed mounter recording every call"""

    def __init__(self) -> None:
        self.attached: List[pathlib.Path] = []
        self.detached: List[pathlib.Path] = []
        self.fail_attach: bool = False
        self.fail_detach: bool = False
        self._lock = threading.Lock()

    def attach(self, image_path: pathlib.Path, mount_point: pathlib.Path) -> None:
        if self.fail_attach or not image_path.exists():
            raise HdiutilError("attach failed", returncode=1)

        with self._lock:
            self.attached.append(image_path)
        shutil.copytree(image_path, mount_point, dirs_exist_ok=True)

    def detach(self, mount_point: pathlib.Path) -> None:
        if self.fail_detach:
            raise HdiutilError("detach failed", returncode=16)

        with self._lock:
            self.detached.append(mount_point)
        for child in mount_point.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()


class FakeExpander:
    """Directory-backed package expander"""

    def __init__(self, returncode: int = 0) -> None:
        self.returncode = returncode
        self.expanded: List[pathlib.Path] = []

    def expand(self, package_path: pathlib.Path, destination: pathlib.Path) -> None:
        if self.returncode != 0:
            raise PkgutilError("expand failed", returncode=self.returncode)

        self.expanded.append(package_path)
        shutil.copytree(package_path, destination)


def write_plist(path: pathlib.Path, content: Any) -> pathlib.Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as file:
        plistlib.dump(content, file)
    return path


def write_system_version(volume: pathlib.Path, version: str, build: str) -> None:
    write_plist(
        volume / "System/Library/CoreServices/SystemVersion.plist",
        {
            "ProductName": "Mac OS X",
            "ProductVersion": version,
            "ProductBuildVersion": build,
        },
    )


def make_installer(
    root: pathlib.Path,
    version: Optional[str] = "10.15.3",
    build: str = "19D76",
    boards: Optional[Dict[str, Any]] = None,
    legacy: bool = False,
    name: str = "Install macOS Catalina.app",
    with_package: bool = True,
) -> pathlib.Path:
    """Create an installer app

    Args:
        root: Parent directory
        version: Version written in the base system, None for no descriptor
        build: Build version
        boards: Content of Config.plist by board-id (None for no Config.plist)
        legacy: Put BaseSystem.dmg inside InstallESD.dmg
        name: Name of the app
        with_package: Create Packages/FirmwareUpdate.pkg

    Returns:
        Path of the app
    """
    app = root / name
    shared_support = app / "Contents/SharedSupport"
    install_esd = shared_support / "InstallESD.dmg"
    install_esd.mkdir(parents=True)

    base_system = (install_esd if legacy else shared_support) / "BaseSystem.dmg"
    base_system.mkdir(parents=True)
    if version is not None:
        write_system_version(base_system, version, build)

    if with_package:
        updater = install_esd / "Packages/FirmwareUpdate.pkg/Scripts/Tools/USBCUpdater"
        updater.mkdir(parents=True)
        (updater / "README").write_text("not a board")

        for board_id, config in (boards or {}).items():
            board = updater / board_id
            board.mkdir()
            (board / "firmware.bin").write_bytes(b"\x00firmware")
            if config is not None:
                write_plist(board / "Config.plist", config)

    return app


@pytest.fixture(autouse=True)
def temporary_directory(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch) -> pathlib.Path:
    directory = tmp_path / "tmp"
    monkeypatch.setattr(Settings, "TEMPORARY_DIRECTORY", directory)
    return directory


@pytest.fixture()
def mounter() -> FakeMounter:
    return FakeMounter()


@pytest.fixture()
def expander() -> FakeExpander:
    return FakeExpander()


@pytest.fixture()
def broker(mounter: FakeMounter) -> MountBroker:
    return MountBroker(mounter)


@pytest.fixture()
def installers(tmp_path: pathlib.Path) -> pathlib.Path:
    directory = tmp_path / "installers"
    directory.mkdir()
    return directory
