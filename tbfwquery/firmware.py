"""
Thunderbolt firmware descriptors.

Every board-id directory of the firmware updater carries a `Config.plist` whose
`Thunderbolt` array describes the firmwares for this machine:

    <key>Thunderbolt</key>
    <array>
        <dict>
            <key>Firmware</key>                  <string>...</string>
            <key>Version</key>                   <real>...</real>
            <key>Ridge Firmware Version</key>    <real>...</real>   (optional)
            <key>Ridge Silicon Vendor ID</key>   <integer>...</integer>
            <key>Ridge Silicon Device ID</key>   <integer>...</integer>
            <key>Ridge Silicon Revision</key>    <integer>...</integer>
        </dict>
    </array>
"""
from __future__ import annotations

import dataclasses
import logging
import pathlib
import plistlib
from typing import Any, Dict, List, Mapping, Union

from tbfwquery.exc import DescriptorError
from tbfwquery.writer import IndentingWriter, Printable


logger: logging.Logger = logging.getLogger(__name__)

BoardID = str
"""Board identifier of a machine, e.g. Mac-06F11F11946D27C5"""

CONFIG_FILE: str = "Config.plist"
"""Name of the configuration file in a board-id directory"""

THUNDERBOLT_KEY: str = "Thunderbolt"


def _integer(info: Mapping[str, Any], key: str) -> int:
    value = info.get(key)
    if not isinstance(value, int) or isinstance(value, bool):
        raise DescriptorError(f"Missing or invalid {key!r}")
    return value


def _number(info: Mapping[str, Any], key: str) -> float:
    value = info.get(key)
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise DescriptorError(f"Missing or invalid {key!r}")
    return float(value)


@dataclasses.dataclass(frozen=True)
class FirmwareInfo(Printable):
    """One firmware of a machine

    Attributes:
        file_name: Firmware file name
        version: Firmware version, as a decimal string ("1.0")
        vendor_id: Ridge silicon vendor ID
        device_id: Ridge silicon device ID
        revision: Ridge silicon revision
    """

    file_name: str
    version: str
    vendor_id: int
    device_id: int
    revision: int

    @classmethod
    def from_info(cls, info: Mapping[str, Any]) -> FirmwareInfo:
        """Build from an entry of the `Thunderbolt` array of a `Config.plist`

        The ridge firmware version is preferred over the generic version.

        Raises:
            DescriptorError if a required field is missing or mistyped
        """
        if not isinstance(info, Mapping):
            raise DescriptorError("Firmware info is not a dictionary")

        file_name = info.get("Firmware")
        if not isinstance(file_name, str):
            raise DescriptorError("Missing or invalid 'Firmware'")

        vendor_id = _integer(info, "Ridge Silicon Vendor ID")
        device_id = _integer(info, "Ridge Silicon Device ID")
        revision = _integer(info, "Ridge Silicon Revision")
        version = _number(info, "Version")

        ridge_version = info.get("Ridge Firmware Version")
        if isinstance(ridge_version, (int, float)) and not isinstance(ridge_version, bool):
            version = float(ridge_version)

        return cls(file_name, str(version), vendor_id, device_id, revision)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FirmwareInfo:
        """Inverse of `to_dict`

        Raises:
            DescriptorError on a missing or mistyped field
        """
        try:
            values = (
                data["fileName"],
                data["version"],
                data["vendorID"],
                data["deviceID"],
                data["revision"],
            )
        except (KeyError, TypeError) as e:
            raise DescriptorError(f"Invalid stored firmware: {e}")

        for value, expected in zip(values, (str, str, int, int, int)):
            if not isinstance(value, expected) or isinstance(value, bool):
                raise DescriptorError(f"Invalid stored firmware value {value!r}")

        return cls(*values)

    def to_dict(self) -> Dict[str, Union[str, int]]:
        return {
            "fileName": self.file_name,
            "version": self.version,
            "vendorID": self.vendor_id,
            "deviceID": self.device_id,
            "revision": self.revision,
        }

    def render(self, writer: IndentingWriter) -> None:
        writer.println(f"- Firmware Version #: {self.version}")
        writer.println(f"- Firmware File Name: {self.file_name}")
        writer.println(f"- Hardware Vendor ID: 0x{self.vendor_id:X}")
        writer.println(f"- Hardware Device ID: 0x{self.device_id:X}")
        writer.println(f"- Hardware Revisions: {self.revision}")


@dataclasses.dataclass
class FirmwareConfig(Printable):
    """Firmwares of one machine (may be empty)"""

    firmwares: List[FirmwareInfo] = dataclasses.field(default_factory=list)

    @classmethod
    def from_plist(cls, plist: Mapping[str, Any], name: str = CONFIG_FILE) -> FirmwareConfig:
        """Build from the content of a `Config.plist`

        Invalid entries are dropped as long as one valid entry remains.

        Args:
            plist: Content of the configuration
            name: Name used in the messages

        Raises:
            DescriptorError if there is no Thunderbolt entry or no valid one
        """
        if not isinstance(plist, Mapping):
            raise DescriptorError(f"{name} is not a dictionary")

        # Some machines only have USB-C info
        infos = plist.get(THUNDERBOLT_KEY)
        if not isinstance(infos, list):
            raise DescriptorError(f"{name} does not contain Thunderbolt-related info")

        firmwares: List[FirmwareInfo] = []
        for index, info in enumerate(infos):
            try:
                firmwares.append(FirmwareInfo.from_info(info))
            except DescriptorError as e:
                logger.warning("Ignore firmware %d of %s: %s", index, name, e)

        if infos and not firmwares:
            raise DescriptorError(f"{name} does not contain any valid firmware")

        return cls(firmwares)

    @classmethod
    def from_file(cls, config_path: pathlib.Path) -> FirmwareConfig:
        """Load a `Config.plist` file

        Raises:
            DescriptorError if the file cannot be read or is invalid
        """
        try:
            with open(config_path, "rb") as file:
                plist = plistlib.load(file)
        except (OSError, plistlib.InvalidFileException, ValueError) as e:
            raise DescriptorError(f"Unable to load {config_path}: {e}")

        return cls.from_plist(plist, name=str(config_path))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FirmwareConfig:
        """Inverse of `to_dict`

        Raises:
            DescriptorError on invalid content
        """
        if not isinstance(data, Mapping) or not isinstance(data.get("firmwares"), list):
            raise DescriptorError("Invalid stored firmware config")

        return cls([FirmwareInfo.from_dict(firmware) for firmware in data["firmwares"]])

    def to_dict(self) -> Dict[str, List[Dict[str, Union[str, int]]]]:
        return {"firmwares": [firmware.to_dict() for firmware in self.firmwares]}

    def __len__(self) -> int:
        return len(self.firmwares)

    def render(self, writer: IndentingWriter) -> None:
        for index, firmware in enumerate(self.firmwares):
            writer.println(f"* Firmware {index}")
            with writer.indented():
                firmware.render(writer)


FirmwareRecords = Dict[BoardID, FirmwareConfig]
"""Firmware configurations of an installer, by board-id"""


def records_to_dict(records: Mapping[BoardID, FirmwareConfig]) -> Dict[str, Any]:
    return {board_id: config.to_dict() for board_id, config in records.items()}


def records_from_dict(data: Mapping[str, Any]) -> FirmwareRecords:
    """Inverse of `records_to_dict`

    Raises:
        DescriptorError on invalid content
    """
    if not isinstance(data, Mapping):
        raise DescriptorError("Invalid stored records")

    return {
        str(board_id): FirmwareConfig.from_dict(config)
        for board_id, config in data.items()
    }


def render_records(records: Mapping[BoardID, FirmwareConfig], writer: IndentingWriter) -> None:
    """Render the records of an installer, sorted by board-id"""
    for board_id in sorted(records):
        writer.println(f"- Board ID: {board_id}")
        with writer.indented():
            records[board_id].render(writer)
