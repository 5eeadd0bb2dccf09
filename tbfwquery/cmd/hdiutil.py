"""
hdiutil wrapper.

Attach and detach disk images on a given mount point.
"""
import pathlib

from tbfwquery.cmd.command import Command, CommandError


class HdiutilError(CommandError):
    """Error handler for hdiutil"""

    pass


class Hdiutil(Command):
    """Handler for the hdiutil command"""

    name: str = "hdiutil"
    """Name of the command line utility"""

    error = HdiutilError

    def attach(self, image_path: pathlib.Path, mount_point: pathlib.Path) -> None:
        """Attach the disk image at `image_path` on `mount_point`

        The image is not shown in the Finder and its checksum is not verified.

        Raises:
            HdiutilError if the image cannot be attached
        """
        result = self.run(
            [
                "attach",
                str(image_path),
                "-nobrowse",
                "-mountpoint",
                str(mount_point),
                "-noverify",
                "-quiet",
            ]
        )
        self.check(result, f"Attach: Unable to attach {image_path}")

    def detach(self, mount_point: pathlib.Path) -> None:
        """Detach the volume mounted on `mount_point`

        Raises:
            HdiutilError if the volume cannot be detached
        """
        result = self.run(["detach", str(mount_point), "-quiet"])
        self.check(result, f"Detach: Unable to detach {mount_point}")
