from tbfwquery.cmd.command import Command, CommandError, find_executable
from tbfwquery.cmd.hdiutil import Hdiutil, HdiutilError
from tbfwquery.cmd.pkgutil import Pkgutil, PkgutilError

__all__ = [
    # From command.py
    "Command",
    "CommandError",
    "find_executable",
    # From hdiutil.py
    "Hdiutil",
    "HdiutilError",
    # From pkgutil.py
    "Pkgutil",
    "PkgutilError",
]
