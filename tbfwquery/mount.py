"""
Disk image mounts.

The `MountBroker` is the single owner of every disk image mounted by a tbfwquery
process. Mounts are either exclusive (one caller, fresh mount point) or shared:
several queries may depend on the same container disk image, which is then
mounted once and detached when the last reference is released.
"""
from __future__ import annotations

import contextlib
import dataclasses
import logging
import pathlib
import threading
from typing import Dict, Iterator, List, Optional, Protocol, Tuple

from tbfwquery.cmd import CommandError, Hdiutil
from tbfwquery.exc import MountError, MountTrackingError
from tbfwquery.fs import random_temporary_directory, remove_directory
from tbfwquery.settings import Settings


logger: logging.Logger = logging.getLogger(__name__)


class Mounter(Protocol):
    """Something able to attach and detach disk images (e.g. `Hdiutil`)"""

    def attach(self, image_path: pathlib.Path, mount_point: pathlib.Path) -> None:
        ...

    def detach(self, mount_point: pathlib.Path) -> None:
        ...


@dataclasses.dataclass
class MountHandle:
    """A tracked mount

    Attributes:
        image: Path towards the disk image
        mount_point: Where the image is mounted
        refcount: Number of holders, always >= 1 while tracked
    """

    image: pathlib.Path
    mount_point: pathlib.Path
    refcount: int = 1


class MountBroker:
    """Acquire and release disk image mounts

    Args:
        mounter: Optional. Mount utility, defaults to hdiutil

    Raises:
        MountError if no mounter is given and hdiutil cannot be found
    """

    def __init__(self, mounter: Optional[Mounter] = None) -> None:
        """Constructor"""
        if mounter is None:
            try:
                mounter = Hdiutil(Settings.HDIUTIL)
            except CommandError as e:
                raise MountError(str(e))

        self.mounter: Mounter = mounter

        self._lock = threading.Lock()
        # Per-image lock and number of threads using it
        self._image_locks: Dict[pathlib.Path, Tuple[threading.Lock, int]] = {}

        # Shared mounts by image, exclusive mounts by mount point
        self._shared: Dict[pathlib.Path, MountHandle] = {}
        self._exclusive: Dict[pathlib.Path, MountHandle] = {}

    @staticmethod
    def _key(path: pathlib.Path) -> pathlib.Path:
        return pathlib.Path(path).expanduser().absolute()

    @contextlib.contextmanager
    def _image_lock(self, image: pathlib.Path) -> Iterator[None]:
        """Serialize the mount and unmount of `image`

        The lock is dropped from the table once no thread uses it anymore.
        """
        with self._lock:
            lock, users = self._image_locks.get(image, (threading.Lock(), 0))
            self._image_locks[image] = (lock, users + 1)

        try:
            with lock:
                yield
        finally:
            with self._lock:
                users = self._image_locks[image][1] - 1
                if users == 0:
                    del self._image_locks[image]
                else:
                    self._image_locks[image] = (lock, users)

    def _attach(self, image: pathlib.Path) -> pathlib.Path:
        mount_point = self._key(random_temporary_directory(prefix=f"{image.stem}-"))

        logger.debug("Attach %s on %s", image, mount_point)
        try:
            self.mounter.attach(image, mount_point)
        except CommandError as e:
            remove_directory(mount_point)
            raise MountError(f"Unable to mount {image}: {e}")

        return mount_point

    def _detach(self, handle: MountHandle) -> bool:
        logger.debug("Detach %s from %s", handle.image, handle.mount_point)
        try:
            self.mounter.detach(handle.mount_point)
        except CommandError as e:
            logger.warning(
                "Failed to unmount %s from %s, you could ignore this: %s",
                handle.image.name,
                handle.mount_point,
                e,
            )
            return False

        remove_directory(handle.mount_point)
        return True

    def acquire_exclusive(self, image: pathlib.Path) -> pathlib.Path:
        """Mount `image` on a fresh mount point owned by the caller

        The caller must give it back with `release_exclusive`.

        Raises:
            MountError if the image cannot be mounted

        Returns:
            The mount point
        """
        image = self._key(image)
        mount_point = self._attach(image)

        with self._lock:
            self._exclusive[mount_point] = MountHandle(image, mount_point)

        return mount_point

    def release_exclusive(self, mount_point: pathlib.Path) -> bool:
        """Unmount a mount point obtained with `acquire_exclusive`

        Raises:
            MountTrackingError if the mount point is not tracked

        Returns:
            False if the unmount failed (the mount point is leaked)
        """
        with self._lock:
            handle = self._exclusive.pop(self._key(mount_point), None)

        if handle is None:
            raise MountTrackingError(f"{mount_point} is not an exclusive mount point")

        return self._detach(handle)

    @contextlib.contextmanager
    def mounted(self, image: pathlib.Path) -> Iterator[pathlib.Path]:
        """Exclusive mount for the duration of the block"""
        mount_point = self.acquire_exclusive(image)
        try:
            yield mount_point
        finally:
            self.release_exclusive(mount_point)

    def acquire_shared(self, image: pathlib.Path) -> pathlib.Path:
        """Take a reference on `image`, mounting it if needed

        Raises:
            MountError if the image cannot be mounted

        Returns:
            The mount point, the same for every holder
        """
        image = self._key(image)

        with self._image_lock(image):
            with self._lock:
                handle = self._shared.get(image)
                if handle is not None:
                    handle.refcount += 1
                    logger.debug("Retain %s (%d)", image.name, handle.refcount)
                    return handle.mount_point

            mount_point = self._attach(image)

            with self._lock:
                self._shared[image] = MountHandle(image, mount_point)

        return mount_point

    def release(self, image: pathlib.Path) -> bool:
        """Drop a reference on `image`, unmounting it with the last one

        Raises:
            MountTrackingError if the image is not tracked

        Returns:
            False if the unmount failed (the mount point is leaked)
        """
        image = self._key(image)

        with self._image_lock(image):
            with self._lock:
                handle = self._shared.get(image)
                if handle is None:
                    raise MountTrackingError(
                        f"{image} is not tracked by the reference counter"
                    )

                handle.refcount -= 1
                logger.debug("Release %s (%d)", image.name, handle.refcount)
                if handle.refcount > 0:
                    return True

                del self._shared[image]

            return self._detach(handle)

    def refcount(self, image: pathlib.Path) -> int:
        """Number of references held on `image` (0 if untracked)"""
        with self._lock:
            handle = self._shared.get(self._key(image))
            return handle.refcount if handle is not None else 0

    @property
    def outstanding(self) -> List[MountHandle]:
        """Every mount still tracked"""
        with self._lock:
            return [
                dataclasses.replace(handle)
                for handle in [*self._shared.values(), *self._exclusive.values()]
            ]

    def shutdown(self) -> None:
        """Check that every mount has been released

        Raises:
            MountTrackingError if some mounts are still referenced
        """
        outstanding = self.outstanding
        if outstanding:
            raise MountTrackingError(
                "Mounts still referenced: "
                + ", ".join(f"{h.image} ({h.refcount})" for h in outstanding)
            )

    def __enter__(self) -> MountBroker:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        # Do not mask the original error with a tracking one
        if exc_type is None:
            self.shutdown()
