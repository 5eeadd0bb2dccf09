import pathlib

import pytest

from tbfwquery.exc import DescriptorError
from tbfwquery.firmware import (
    FirmwareConfig,
    FirmwareInfo,
    records_from_dict,
    records_to_dict,
    render_records,
)
from tbfwquery.writer import StringWriter

from conftest import RIDGE_FIRMWARE, write_plist


def test_from_info() -> None:
    firmware = FirmwareInfo.from_info(RIDGE_FIRMWARE)
    assert firmware == FirmwareInfo("FW1", "1.0", 0x8086, 0x1, 1)


def test_ridge_version_is_preferred() -> None:
    info = dict(RIDGE_FIRMWARE, **{"Ridge Firmware Version": 41.1})
    assert FirmwareInfo.from_info(info).version == "41.1"

    # An integer version is stored in its decimal form
    info = dict(RIDGE_FIRMWARE, Version=32)
    assert FirmwareInfo.from_info(info).version == "32.0"


@pytest.mark.parametrize(
    "missing",
    [
        "Firmware",
        "Version",
        "Ridge Silicon Vendor ID",
        "Ridge Silicon Device ID",
        "Ridge Silicon Revision",
    ],
)
def test_missing_field(missing: str) -> None:
    info = dict(RIDGE_FIRMWARE)
    del info[missing]

    with pytest.raises(DescriptorError):
        FirmwareInfo.from_info(info)


def test_mistyped_field() -> None:
    with pytest.raises(DescriptorError):
        FirmwareInfo.from_info(dict(RIDGE_FIRMWARE, **{"Ridge Silicon Vendor ID": "0x8086"}))

    with pytest.raises(DescriptorError):
        FirmwareInfo.from_info(dict(RIDGE_FIRMWARE, **{"Ridge Silicon Revision": True}))


def test_config_from_plist() -> None:
    broken = dict(RIDGE_FIRMWARE)
    del broken["Ridge Silicon Device ID"]

    config = FirmwareConfig.from_plist({"Thunderbolt": [RIDGE_FIRMWARE, broken]})
    assert config.firmwares == [FirmwareInfo.from_info(RIDGE_FIRMWARE)]

    assert FirmwareConfig.from_plist({"Thunderbolt": []}).firmwares == []

    with pytest.raises(DescriptorError):
        FirmwareConfig.from_plist({"Thunderbolt": [broken]})

    # USB-C only machine
    with pytest.raises(DescriptorError):
        FirmwareConfig.from_plist({"USB-C": []})


def test_config_from_file(tmp_path: pathlib.Path) -> None:
    path = write_plist(tmp_path / "Config.plist", {"Thunderbolt": [RIDGE_FIRMWARE]})
    assert len(FirmwareConfig.from_file(path)) == 1

    with pytest.raises(DescriptorError):
        FirmwareConfig.from_file(tmp_path / "Missing.plist")

    path.write_bytes(b"not a plist")
    with pytest.raises(DescriptorError):
        FirmwareConfig.from_file(path)


def test_records_dict_round_trip() -> None:
    records = {
        "Mac-AAA": FirmwareConfig([FirmwareInfo("FW1", "1.0", 0x8086, 0x1, 1)]),
        "Mac-BBB": FirmwareConfig(),
    }
    assert records_from_dict(records_to_dict(records)) == records

    with pytest.raises(DescriptorError):
        records_from_dict({"Mac-AAA": {"firmwares": [{"fileName": "FW1"}]}})


def test_render_records() -> None:
    records = {
        "Mac-BBB": FirmwareConfig(),
        "Mac-AAA": FirmwareConfig([FirmwareInfo("FW1", "1.0", 0x8086, 0x1, 1)]),
    }
    writer = StringWriter()
    render_records(records, writer)

    assert writer.getvalue() == (
        "- Board ID: Mac-AAA\n"
        "    * Firmware 0\n"
        "        - Firmware Version #: 1.0\n"
        "        - Firmware File Name: FW1\n"
        "        - Hardware Vendor ID: 0x8086\n"
        "        - Hardware Device ID: 0x1\n"
        "        - Hardware Revisions: 1\n"
        "- Board ID: Mac-BBB\n"
    )
