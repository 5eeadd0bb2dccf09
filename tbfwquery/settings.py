"""
tbfwquery - Settings
--------------------

The settings of tbfwquery are grouped in this module.
They are updatable from the environment using the 'TBFW_' prefix.

Value are lazily type checked and for optional values, -1 == None.

Example:
TBFW_WORKERS=4 tbfwquery query --dmg Installers.dmg

"""

import os
import pathlib
import tempfile
from typing import get_type_hints, Optional, Tuple

from tbfwquery.exc import SettingsError


class Settings:
    __PREFIX: str = "TBFW_"

    __COUNTS: Tuple[str, ...] = ("WORKERS",)
    """Settings that must be at least 1 when set"""

    TEMPORARY_DIRECTORY: pathlib.Path = pathlib.Path(tempfile.gettempdir())
    """Where mount points and working directories are created"""

    HDIUTIL: str = "hdiutil"
    """Disk image utility (name or path)"""

    PKGUTIL: str = "pkgutil"
    """Package utility (name or path)"""

    WORKERS: Optional[int] = 1
    """Number of queries to run in parallel. None means one per CPU."""

    INSTALLER_PREFIX: str = "Install"
    """Name prefix of installer apps inside a container disk image"""

    BOARD_PREFIX: str = "Mac-"
    """Name prefix of board-id directories in the firmware updater"""

    @staticmethod
    def update_settings() -> None:
        """Update the settings according to values set in the ENV.

        Raises:
            SettingsError if a value does not fit the type of its setting
        """
        tbfw_vars = [
            variable
            for variable in os.environ
            if variable.startswith(Settings.__PREFIX)
        ]

        local_constants = [
            cst for cst in dir(Settings) if not cst.startswith("_") and cst.isupper()
        ]

        variable_types = get_type_hints(Settings)

        for variable in local_constants:
            variable_env = f"{Settings.__PREFIX}{variable}"
            if variable_env in tbfw_vars:

                variable_type = variable_types[variable]
                variable_value = os.environ[variable_env]

                try:
                    if variable_type is int:
                        base = 10
                        if variable_value.startswith("0x") or variable_value.startswith(
                            "0X"
                        ):
                            base = 16
                        value = int(variable_value, base=base)
                    elif variable_type is str:
                        value = variable_value
                    elif variable_type is float:
                        value = float(variable_value)
                    elif variable_type is pathlib.Path:
                        value = pathlib.Path(variable_value)
                    elif variable_type == Optional[int]:
                        value = int(variable_value)
                        if value == -1:
                            value = None
                    else:
                        raise Exception(
                            f"Unknown variable type {variable_type} for {variable}"
                        )
                except ValueError:
                    raise SettingsError(
                        f"Invalid value {variable_value!r} for {variable_env}"
                    )

                if variable in Settings.__COUNTS and value is not None and value < 1:
                    raise SettingsError(
                        f"{variable_env} must be at least 1 (or -1), got {variable_value}"
                    )

                setattr(Settings, variable, value)
