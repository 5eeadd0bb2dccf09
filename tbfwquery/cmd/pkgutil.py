"""
pkgutil wrapper.

Only the full expansion of flat packages is supported.
"""
import pathlib

from tbfwquery.cmd.command import Command, CommandError


class PkgutilError(CommandError):
    pass


class Pkgutil(Command):
    name: str = "pkgutil"

    error = PkgutilError

    def expand(self, package_path: pathlib.Path, destination: pathlib.Path) -> None:
        """Expand `package_path` and its payloads into `destination`

        `destination` must not exist, pkgutil creates it.

        Raises:
            PkgutilError if the expansion fails
        """
        result = self.run(["--expand-full", str(package_path), str(destination)])
        self.check(result, f"Expand: Unable to expand {package_path}")
