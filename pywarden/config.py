#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-05 16:41:09 krylon>
#
# /data/code/python/pywarden/config.py
# created on 13. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.config

(c) 2026 Benjamin Walkenhorst
"""

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Optional, Union

from pywarden import common
from pywarden.common import WardenError


class ConfigError(WardenError):
    """ConfigError indicates a missing or malformed configuration value."""


defaults: Final[dict[str, Any]] = {
    # Login failure detection. The value is the number of failures that trigger a ban,
    # 0 disables the check.
    "LF_SSHD": 5,
    "LF_FTPD": 10,
    "LF_POP3D": 0,
    "LF_IMAPD": 0,
    "LF_HTACCESS": 5,
    "LF_MODSEC": 5,
    "LF_CXS": 0,
    "LF_BIND": 0,
    "LF_SUHOSIN": 0,
    "LF_CPANEL": 0,
    "LF_SMTPAUTH": 5,
    "LF_EXIMSYNTAX": 10,
    "LF_QOS": 0,
    "LF_SYMLINK": 0,
    "LF_APACHE_ERRPORT": 2,
    # Login tracking and alerts
    "LT_POP3D": 0,
    "LT_IMAPD": 0,
    "LF_SSH_EMAIL_ALERT": 1,
    "LF_SU_EMAIL_ALERT": 1,
    "LF_SUDO_EMAIL_ALERT": 0,
    "LF_CONSOLE_EMAIL_ALERT": 1,
    "LF_CPANEL_ALERT": 0,
    # Port scan tracking
    "PS_PORTS": "0:65535,ICMP",
    "TCP_IN": "20,21,22,25,53,80,110,143,443,465,587,993,995",
    "UDP_IN": "20,21,53",
    # Lookups
    "LF_LOOKUPS": 1,
    "CC_LOOKUPS": 1,
    "CC6_LOOKUPS": 0,
    "CC_SRC": "1",
    "GEO_DIR": "",
    "GEO_CACHE_TTL": 86400,
    "HOST": "/usr/bin/host",
    "IP": "/sbin/ip",
    "DNS_TIMEOUT": 10,
    "RBL_TIMEOUT": 4,
    "RBL_WORKERS": 8,
    "RBL_ZONES_FILE": "",
    "RBL_CONF_FILE": "",
    "LF_RBL_BAN": 0,
    # Enforcement
    "PT_SSHDKILL": 0,
    "PORTS_sshd": "22",
    "SYSLOG": 0,
    "DEBUG": 0,
}


@dataclass(frozen=True, slots=True)
class PortRange:
    """PortRange is an inclusive range of ports, a single port has first == last."""

    first: int
    last: int

    def __contains__(self, port: int) -> bool:
        return self.first <= port <= self.last


def parse_ports(text: str) -> list[PortRange]:
    """Parse a port list like "20,21,30000:35000" into a list of PortRanges.

    Raise ConfigError if any item is not a port or a range of ports.
    """
    ranges: list[PortRange] = []
    for item in text.replace(" ", "").split(","):
        if item == "":
            continue
        try:
            if ":" in item:
                lo, hi = item.split(":", 1)
                r = PortRange(int(lo), int(hi))
            else:
                r = PortRange(int(item), int(item))
        except ValueError as verr:
            raise ConfigError(f"Invalid port specification {item!r} in {text!r}") from verr
        if not 0 <= r.first <= r.last <= 65535:
            raise ConfigError(f"Port range {item!r} is out of bounds")
        ranges.append(r)
    return ranges


def port_set(text: str) -> frozenset[int]:
    """Expand a port list into the set of all ports it names."""
    ports: set[int] = set()
    for r in parse_ports(text):
        ports.update(range(r.first, r.last + 1))
    return frozenset(ports)


@dataclass(kw_only=True, slots=True)
class Config:
    """Config holds the configuration, layered over the built-in defaults."""

    values: dict[str, Any] = field(default_factory=dict)
    source: Optional[Path] = None
    log: logging.Logger = field(default_factory=lambda: common.get_logger("config"))

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> 'Config':
        """Load the configuration from a TOML file.

        If no path is given, the default location is used. A missing file
        yields the defaults.
        """
        cfg_path: Final[Path] = Path(path) if path is not None else common.path.config
        values: dict[str, Any] = {}

        if os.path.exists(cfg_path):
            try:
                with open(cfg_path, "rb") as fh:
                    values = tomllib.load(fh)
            except tomllib.TOMLDecodeError as perr:
                raise ConfigError(f"Cannot parse {cfg_path}: {perr}") from perr

        cfg = cls(values=values, source=cfg_path)
        cfg.log.debug("Loaded %d settings from %s", len(values), cfg_path)
        return cfg

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for <key>, falling back to the defaults."""
        if key in self.values:
            return self.values[key]
        return defaults.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.get(key)

    def __setitem__(self, key: str, val: Any) -> None:
        self.values[key] = val

    def integer(self, key: str, default: int = 0) -> int:
        """Return the value for <key> as an integer.

        Values that cannot be converted are logged and replaced by <default>.
        """
        val = self.get(key, default)
        if isinstance(val, bool):
            return int(val)
        try:
            return int(val)
        except (TypeError, ValueError):
            self.log.error("Configuration value %s = %r is not a number",
                           key,
                           val)
            return default

    def flag(self, key: str) -> bool:
        """Return True if <key> is set to a non-zero value."""
        return self.integer(key) != 0

    def string(self, key: str) -> str:
        """Return the value for <key> as a string."""
        val = self.get(key, "")
        return "" if val is None else str(val)

    def ports(self, key: str) -> Optional[list[PortRange]]:
        """Return the port list stored under <key>.

        If the value cannot be parsed, the error is logged and None is returned,
        so the caller can disable whatever depends on it.
        """
        try:
            return parse_ports(self.string(key))
        except ConfigError as cerr:
            self.log.error("Cannot use %s: %s", key, cerr)
            return None

    def geo_dir(self) -> Path:
        """Return the directory holding the Geo/ASN databases."""
        folder: Final[str] = self.string("GEO_DIR")
        if folder == "":
            return common.path.geo
        return Path(folder)


# Local Variables: #
# python-indent: 4 #
# End: #
