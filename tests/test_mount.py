import logging
import pathlib
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from tbfwquery.exc import MountError, MountTrackingError
from tbfwquery.mount import MountBroker
from tbfwquery.settings import Settings

from conftest import FakeMounter


@pytest.fixture()
def image(tmp_path: pathlib.Path) -> pathlib.Path:
    image = tmp_path / "Installers.dmg"
    image.mkdir()
    (image / "content.txt").write_text("content")
    return image


def test_exclusive(broker: MountBroker, mounter: FakeMounter, image: pathlib.Path) -> None:
    first = broker.acquire_exclusive(image)
    second = broker.acquire_exclusive(image)

    assert first != second
    assert (first / "content.txt").read_text() == "content"
    assert len(broker.outstanding) == 2

    assert broker.release_exclusive(first) is True
    assert broker.release_exclusive(second) is True

    assert mounter.detached == [first, second]
    assert not first.exists() and not second.exists()
    assert broker.outstanding == []


def test_mounted_context(broker: MountBroker, image: pathlib.Path) -> None:
    with pytest.raises(KeyError):
        with broker.mounted(image) as mount_point:
            assert (mount_point / "content.txt").is_file()
            raise KeyError("boom")

    assert broker.outstanding == []


def test_attach_failure(
    broker: MountBroker, mounter: FakeMounter, image: pathlib.Path, temporary_directory: pathlib.Path
) -> None:
    mounter.fail_attach = True

    with pytest.raises(MountError):
        broker.acquire_exclusive(image)
    with pytest.raises(MountError):
        broker.acquire_shared(image)

    assert broker.outstanding == []
    assert broker.refcount(image) == 0
    assert list(temporary_directory.iterdir()) == []


def test_detach_failure_is_a_warning(
    broker: MountBroker,
    mounter: FakeMounter,
    image: pathlib.Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    mount_point = broker.acquire_shared(image)
    mounter.fail_detach = True

    with caplog.at_level(logging.WARNING):
        assert broker.release(image) is False

    assert "Failed to unmount" in caplog.text
    assert broker.outstanding == []
    # The mount point is leaked
    assert mount_point.is_dir()


def test_shared_reference_counting(
    broker: MountBroker, mounter: FakeMounter, image: pathlib.Path
) -> None:
    mount_point = broker.acquire_shared(image)
    assert broker.acquire_shared(image) == mount_point
    assert broker.refcount(image) == 2

    broker.release(image)
    assert broker.refcount(image) == 1
    assert mounter.detached == []

    broker.release(image)
    assert broker.refcount(image) == 0
    assert mounter.attached == [image]
    assert mounter.detached == [mount_point]

    # Mounted again once released
    assert broker.acquire_shared(image) != mount_point
    broker.release(image)
    assert len(mounter.attached) == 2


def test_concurrent_shared(broker: MountBroker, mounter: FakeMounter, image: pathlib.Path) -> None:
    holders = 16
    barrier = threading.Barrier(holders)

    def acquire() -> pathlib.Path:
        barrier.wait()
        return broker.acquire_shared(image)

    def release() -> bool:
        barrier.wait()
        return broker.release(image)

    with ThreadPoolExecutor(max_workers=holders) as executor:
        mount_points = set(executor.map(lambda _: acquire(), range(holders)))
        assert broker.refcount(image) == holders
        assert all(executor.map(lambda _: release(), range(holders)))

    assert len(mount_points) == 1
    assert len(mounter.attached) == 1
    assert len(mounter.detached) == 1
    assert broker.outstanding == []
    assert broker._image_locks == {}


def test_release_untracked(broker: MountBroker, image: pathlib.Path, tmp_path: pathlib.Path) -> None:
    with pytest.raises(MountTrackingError):
        broker.release(image)

    with pytest.raises(MountTrackingError):
        broker.release_exclusive(tmp_path)

    mount_point = broker.acquire_exclusive(image)
    broker.release_exclusive(mount_point)
    with pytest.raises(MountTrackingError):
        broker.release_exclusive(mount_point)


def test_shutdown(broker: MountBroker, image: pathlib.Path) -> None:
    broker.acquire_shared(image)

    with pytest.raises(MountTrackingError):
        broker.shutdown()

    broker.release(image)
    broker.shutdown()


def test_context_manager(mounter: FakeMounter, image: pathlib.Path) -> None:
    with pytest.raises(MountTrackingError):
        with MountBroker(mounter) as broker:
            broker.acquire_exclusive(image)

    with MountBroker(mounter) as broker:
        broker.release_exclusive(broker.acquire_exclusive(image))


def test_relative_temporary_directory(
    broker: MountBroker,
    image: pathlib.Path,
    tmp_path: pathlib.Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(Settings, "TEMPORARY_DIRECTORY", pathlib.Path("scratch"))

    mount_point = broker.acquire_exclusive(image)
    assert mount_point.is_absolute()
    assert broker.release_exclusive(mount_point) is True

    shared = broker.acquire_shared(image)
    assert shared.is_absolute()
    assert broker.release(image) is True

    assert broker.outstanding == []
    assert list((tmp_path / "scratch").iterdir()) == []


def test_image_locks_are_dropped(broker: MountBroker, image: pathlib.Path) -> None:
    for _ in range(3):
        broker.acquire_shared(image)
        broker.acquire_shared(image)
        broker.release(image)
        broker.release(image)

    assert broker._image_locks == {}

    with pytest.raises(MountTrackingError):
        broker.release(image)

    assert broker._image_locks == {}
