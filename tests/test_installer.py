import pathlib

import pytest

from tbfwquery.exc import MissingSystemImage, VersionNotFound
from tbfwquery.installer import Installer
from tbfwquery.mount import MountBroker
from tbfwquery.version import SystemVersion

from conftest import FakeMounter, make_installer


def test_resolve_modern(broker: MountBroker, mounter: FakeMounter, installers: pathlib.Path) -> None:
    app = make_installer(installers, "10.15.3", "19D76")

    installer = Installer.resolve(app, broker)

    assert installer.version == SystemVersion.parse("10.15.3", "19D76")
    assert installer.path == app
    assert mounter.attached == [app / "Contents/SharedSupport/BaseSystem.dmg"]
    assert broker.outstanding == []


def test_resolve_legacy(broker: MountBroker, mounter: FakeMounter, installers: pathlib.Path) -> None:
    app = make_installer(installers, "10.12.5", "16F73", legacy=True, name="Install macOS Sierra.app")

    installer = Installer.resolve(app, broker)

    assert installer.version == SystemVersion.parse("10.12.5", "16F73")
    # InstallESD.dmg, then the BaseSystem.dmg nested in it
    assert mounter.attached[0] == app / "Contents/SharedSupport/InstallESD.dmg"
    assert mounter.attached[1].name == "BaseSystem.dmg"
    assert len(mounter.detached) == 2
    assert broker.outstanding == []


def test_resolve_missing_install_esd(broker: MountBroker, installers: pathlib.Path) -> None:
    app = installers / "Install macOS.app"
    (app / "Contents/SharedSupport").mkdir(parents=True)

    with pytest.raises(MissingSystemImage):
        Installer.resolve(app, broker)


def test_resolve_without_version(broker: MountBroker, installers: pathlib.Path) -> None:
    app = make_installer(installers, version=None)

    with pytest.raises(VersionNotFound):
        Installer.resolve(app, broker)

    assert broker.outstanding == []


def test_resolve_mount_failure(
    broker: MountBroker, mounter: FakeMounter, installers: pathlib.Path
) -> None:
    app = make_installer(installers)
    mounter.fail_attach = True

    with pytest.raises(VersionNotFound):
        Installer.resolve(app, broker)

    assert broker.outstanding == []
