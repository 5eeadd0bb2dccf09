"""
macOS system versions.

A version is the pair (`ProductVersion`, `ProductBuildVersion`) read from a
`SystemVersion.plist`, e.g. ("10.12.5", "16F73").
"""
from __future__ import annotations

import dataclasses
import functools
import pathlib
import plistlib
import re
from typing import Any, Dict, Tuple, Union

from tbfwquery.exc import MalformedVersion
from tbfwquery.writer import IndentingWriter, Printable


SYSTEM_VERSION_PLIST: str = "System/Library/CoreServices/SystemVersion.plist"
"""Location of the version descriptor on a system volume"""

KEY_SEPARATOR: str = "_"
"""Separator between the version and the build in a version key"""

VERSION_PATTERN = re.compile(r"[0-9]+\.[0-9]+(?:\.[0-9]+)?")

MAC_OS_X_NAMES: Dict[int, str] = {
    0: "Mac OS X Cheetah",
    1: "Mac OS X Puma",
    2: "Mac OS X Jaguar",
    3: "Mac OS X Panther",
    4: "Mac OS X Tiger",
    5: "Mac OS X Leopard",
    6: "Mac OS X Snow Leopard",
    7: "Mac OS X Lion",
    8: "OS X Mountain Lion",
    9: "OS X Mavericks",
    10: "OS X Yosemite",
    11: "OS X El Capitan",
    12: "macOS Sierra",
    13: "macOS High Sierra",
    14: "macOS Mojave",
    15: "macOS Catalina",
}
"""Marketing names for 10.x releases, by minor version"""

MAC_OS_NAMES: Dict[int, str] = {
    11: "macOS Big Sur",
    12: "macOS Monterey",
    13: "macOS Ventura",
    14: "macOS Sonoma",
    15: "macOS Sequoia",
}
"""Marketing names for releases after 10.x, by major version"""


@functools.total_ordering
@dataclasses.dataclass(frozen=True, eq=True, order=False)
class SystemVersion(Printable):
    """A macOS version

    Versions are ordered by their numeric value (major * 1000 + minor * 10 + patch),
    then by their build version: a longer build sorts after a shorter one, builds of
    the same length are compared lexically.

    Attributes:
        major: 10 in 10.12.5
        minor: 12 in 10.12.5
        patch: 5 in 10.12.5 (0 when absent)
        version: Full version string "10.12.5"
        build_version: Build string "16F73"
    """

    major: int
    minor: int
    patch: int
    version: str
    build_version: str

    @classmethod
    def parse(cls, version: str, build_version: str) -> SystemVersion:
        """Parse a version string and its build

        Raises:
            MalformedVersion if the version is not `major.minor[.patch]`
        """
        if not isinstance(version, str) or not VERSION_PATTERN.fullmatch(version):
            raise MalformedVersion(f"Malformed version string: {version!r}")

        if not isinstance(build_version, str):
            raise MalformedVersion(f"Malformed build version: {build_version!r}")

        tokens = [int(token) for token in version.split(".")]
        if len(tokens) == 2:
            tokens.append(0)

        major, minor, patch = tokens
        return cls(major, minor, patch, version, build_version)

    @classmethod
    def from_key(cls, key: str) -> SystemVersion:
        """Inverse of `SystemVersion.key`

        Raises:
            MalformedVersion if the key is not "<version>_<build>"
        """
        version, separator, build_version = key.partition(KEY_SEPARATOR)
        if not separator:
            raise MalformedVersion(f"Malformed version key: {key!r}")

        return cls.parse(version, build_version)

    @classmethod
    def from_plist(cls, plist_path: Union[str, pathlib.Path]) -> SystemVersion:
        """Read a `SystemVersion.plist` file

        Raises:
            MalformedVersion if the file cannot be read or lacks the version keys
        """
        try:
            with open(plist_path, "rb") as file:
                info: Any = plistlib.load(file)
        except (OSError, plistlib.InvalidFileException, ValueError) as e:
            raise MalformedVersion(f"Unable to read {plist_path}: {e}")

        if not isinstance(info, dict):
            raise MalformedVersion(f"Unexpected content in {plist_path}")

        try:
            return cls.parse(info["ProductVersion"], info["ProductBuildVersion"])
        except KeyError as e:
            raise MalformedVersion(f"Missing {e} in {plist_path}")

    @classmethod
    def from_mount_point(cls, mount_point: pathlib.Path) -> SystemVersion:
        """Read the version of a mounted system volume"""
        return cls.from_plist(pathlib.Path(mount_point) / SYSTEM_VERSION_PLIST)

    @property
    def numeric(self) -> int:
        return self.major * 1000 + self.minor * 10 + self.patch

    @property
    def key(self) -> str:
        """Version key "10.12.5_16F73", used to index the database"""
        return f"{self.version}{KEY_SEPARATOR}{self.build_version}"

    def to_key(self) -> str:
        return self.key

    @property
    def os_name(self) -> str:
        """Marketing name, e.g. "macOS Sierra" """
        if self.major == 10:
            return MAC_OS_X_NAMES.get(self.minor, f"macOS 10.{self.minor}")

        return MAC_OS_NAMES.get(self.major, f"macOS {self.major}")

    @property
    def short_name(self) -> str:
        """ "10.12.5 (16F73)" """
        return f"{self.version} ({self.build_version})"

    @property
    def full_name(self) -> str:
        """ "macOS Sierra 10.12.5 (16F73)" """
        return f"{self.os_name} {self.short_name}"

    def _sort_key(self) -> Tuple[int, int, str, str]:
        return (self.numeric, len(self.build_version), self.build_version, self.version)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SystemVersion):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def render(self, writer: IndentingWriter) -> None:
        writer.println(self.full_name)

    def __str__(self) -> str:
        return self.full_name


def compare(lhs: SystemVersion, rhs: SystemVersion) -> int:
    """Three-way comparison: -1, 0 or 1"""
    if lhs < rhs:
        return -1
    if rhs < lhs:
        return 1
    return 0
