#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-03 19:12:40 krylon>
#
# /data/code/python/pywarden/common.py
# created on 12. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.common

(c) 2026 Benjamin Walkenhorst
"""

import logging
import logging.handlers
import os
import pathlib
import socket
import sys
from threading import Lock
from typing import Final

AppName: Final[str] = "PyWarden"
AppVersion: Final[str] = "0.1.0"
Debug: Final[bool] = True
TimeFmt: Final[str] = "%Y-%m-%d %H:%M:%S"
AuditTimeFmt: Final[str] = "%b %d %H:%M:%S"

log_level_tty: int = logging.WARNING


class WardenError(Exception):
    """Base class for application-specific Exceptions."""


class Path:
    """Holds the paths of folders and files used by the application"""

    __base: str

    def __init__(self, root: str = os.path.expanduser(f"~/.{AppName.lower()}.d")) -> None:  # noqa
        self.__base = root

    def base(self, folder: str = "") -> pathlib.Path:
        """
        Return the base directory for application specific files.

        If path is a non-empty string, set the base directory to its value.
        """
        if folder != "":
            self.__base = folder
        return pathlib.Path(self.__base)

    @property
    def log(self) -> pathlib.Path:
        """Return the path to the log file"""
        return pathlib.Path(os.path.join(self.__base, f"{AppName.lower()}.log"))

    @property
    def audit(self) -> pathlib.Path:
        """Return the path to the audit log, where bans and kills are reported."""
        return pathlib.Path(os.path.join(self.__base, "audit.log"))

    @property
    def cache(self) -> pathlib.Path:
        """Return the path of the cache directory."""
        return pathlib.Path(os.path.join(self.__base, "cache"))

    @property
    def dnscache(self) -> pathlib.Path:
        """Return the path of the reverse DNS cache file."""
        return pathlib.Path(os.path.join(self.__base, "cache", "dnscache"))

    @property
    def rbl(self) -> pathlib.Path:
        """Return the directory holding the per-address RBL results."""
        return pathlib.Path(os.path.join(self.__base, "cache", "rbl"))

    @property
    def geo(self) -> pathlib.Path:
        """Return the directory holding the Geo/ASN range databases."""
        return pathlib.Path(os.path.join(self.__base, "geo"))

    @property
    def config(self) -> pathlib.Path:
        """Return the path of the configuration file"""
        return pathlib.Path(os.path.join(self.__base, f"{AppName.lower()}.toml"))


path: Path = Path(os.path.expanduser(f"~/.{AppName.lower()}.d"))

_lock: Final[Lock] = Lock()  # pylint: disable-msg=C0103
_cache: Final[dict[str, logging.Logger]] = {}  # pylint: disable-msg=C0103


def set_basedir(folder: str) -> None:
    """Set the base dir to the speficied path."""
    path.base(folder)
    init_app()


def init_app() -> None:
    """Initialize the application environment"""
    if not os.path.isdir(path.base()):
        print(f"Create base directory {path.base()}")
        os.makedirs(path.base(), exist_ok=True)
    for folder in (path.cache, path.rbl):
        if not os.path.isdir(folder):
            os.mkdir(folder)


def get_logger(name: str, terminal: bool = True) -> logging.Logger:
    """Create and return a logger with the given name"""
    with _lock:
        init_app()

        if name in _cache:
            return _cache[name]

        log_format = "%(asctime)s (%(name)-16s / line %(lineno)-4d) " + \
            "- %(levelname)-8s %(message)s"
        max_log_size = 4 * 2**20  # 4 MiB
        max_log_count = 10

        log_obj = logging.getLogger(name)
        log_obj.setLevel(logging.DEBUG)
        log_file_handler = logging.handlers.RotatingFileHandler(path.log,
                                                                'a',
                                                                max_log_size,
                                                                max_log_count)

        log_fmt = logging.Formatter(log_format)
        log_file_handler.setFormatter(log_fmt)
        log_obj.addHandler(log_file_handler)

        if terminal:
            log_console_handler = logging.StreamHandler(sys.stdout)
            log_console_handler.setFormatter(log_fmt)
            log_console_handler.setLevel(log_level_tty)
            log_obj.addHandler(log_console_handler)

        _cache[name] = log_obj
        return log_obj


def host_short() -> str:
    """Return the first label of the local hostname."""
    name: Final[str] = socket.gethostname() or "unknown"
    return name.split(".")[0]


def get_audit_logger(syslog: bool = False) -> logging.Logger:
    """Return the audit logger.

    Every line it writes carries a timestamp, the short hostname and our process ID,
    so it can be read alongside the system logs it reacts to.
    """
    name: Final[str] = "audit"
    with _lock:
        init_app()

        if name in _cache:
            return _cache[name]

        log_obj = logging.getLogger(f"{AppName.lower()}.{name}")
        log_obj.setLevel(logging.INFO)
        log_obj.propagate = False

        handler = logging.FileHandler(path.audit, 'a')
        handler.setFormatter(logging.Formatter(
            f"%(asctime)s {host_short()} {AppName.lower()}[%(process)d]: %(message)s",
            AuditTimeFmt))
        log_obj.addHandler(handler)

        if syslog and os.path.exists("/dev/log"):
            slh = logging.handlers.SysLogHandler(address="/dev/log",
                                                 facility=logging.handlers.SysLogHandler.LOG_USER)
            slh.setFormatter(logging.Formatter(f"{AppName.lower()}[%(process)d]: %(message)s"))
            log_obj.addHandler(slh)

        _cache[name] = log_obj
        return log_obj


# Local Variables: #
# python-indent: 4 #
# End: #
