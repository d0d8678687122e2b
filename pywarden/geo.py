#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-09 19:27:45 krylon>
#
# /data/code/python/pywarden/geo.py
# created on 17. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.geo

(c) 2026 Benjamin Walkenhorst

Country, city and ASN lookups in the free range databases published by
MaxMind (GeoLite2) and db-ip.com. The files are sorted by address, so instead
of loading them we do a binary search over byte offsets, reading one line per
probe.
"""

import csv
import logging
import os
from dataclasses import dataclass, field
from enum import IntEnum
from ipaddress import IPv4Address, IPv6Address, ip_address, ip_network
from pathlib import Path
from typing import BinaryIO, Callable, Final, Optional, Union

from pywarden import common
from pywarden.common import WardenError
from pywarden.config import Config
from pywarden.model import Address, GeoRecord

IPAddr = Union[IPv4Address, IPv6Address]

# A Comparator looks at the fields of one line and says where the target is:
# -1 before the line, 1 after it, 0 on it. None means the line cannot be parsed.
Comparator = Callable[[list[str]], Optional[int]]


class GeoDBError(WardenError):
    """GeoDBError indicates a range database that cannot be read."""


class Level(IntEnum):
    """Level is how much detail CC_LOOKUPS asks for."""

    Off = 0
    Country = 1
    City = 2
    ASN = 3


def address_key(addr: IPAddr) -> tuple[int, bytes]:
    """Return a sort key for <addr>. All IPv4 addresses sort before all IPv6 addresses."""
    return (addr.version, addr.packed)


def cidr_comparator(target: IPAddr) -> Comparator:
    """Return a Comparator for files whose first field is a network in CIDR notation."""
    key: Final[tuple[int, bytes]] = address_key(target)

    def compare(fields: list[str]) -> Optional[int]:
        try:
            net = ip_network(fields[0], strict=False)
        except (IndexError, ValueError):
            return None
        if key < address_key(net.network_address):
            return -1
        if key > address_key(net.broadcast_address):
            return 1
        return 0
    return compare


def range_comparator(target: IPAddr) -> Comparator:
    """Return a Comparator for files whose first two fields are the first and last address."""
    key: Final[tuple[int, bytes]] = address_key(target)

    def compare(fields: list[str]) -> Optional[int]:
        try:
            first = ip_address(fields[0])
            last = ip_address(fields[1])
        except (IndexError, ValueError):
            return None
        if key < address_key(first):
            return -1
        if key > address_key(last):
            return 1
        return 0
    return compare


def id_comparator(geoname_id: int) -> Comparator:
    """Return a Comparator for files sorted by a numeric ID in the first field."""
    def compare(fields: list[str]) -> Optional[int]:
        try:
            val = int(fields[0])
        except (IndexError, ValueError):
            return None
        return (geoname_id > val) - (geoname_id < val)
    return compare


@dataclass(kw_only=True, slots=True)
class RangeFile:
    """RangeFile is a sorted, line-oriented database file.

    The delimiter is a comma for CSV files and a tab for TSV files.
    """

    path: Path
    delimiter: str = ","
    log: logging.Logger = field(default_factory=lambda: common.get_logger("geo"))

    def _parse(self, raw: bytes) -> list[str]:
        text: Final[str] = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        if self.delimiter == "\t":
            return text.split("\t")
        for row in csv.reader([text], delimiter=self.delimiter):
            return row
        return []

    @staticmethod
    def _line_at(fh: BinaryIO, offset: int) -> tuple[int, int, bytes]:
        """Return the first line that starts at or after <offset>.

        The result is the line's start and end offsets and its content.
        """
        if offset == 0:
            fh.seek(0)
        else:
            fh.seek(offset - 1)
            fh.readline()
        start: Final[int] = fh.tell()
        line: Final[bytes] = fh.readline()
        return start, fh.tell(), line

    def search(self, compare: Comparator) -> Optional[list[str]]:
        """Find the line <compare> accepts and return its fields.

        Return None if no line matches. Raise GeoDBError if the file cannot
        be opened.
        """
        try:
            fh = open(self.path, "rb")
        except OSError as err:
            raise GeoDBError(f"Cannot open {self.path}: {err}") from err

        with fh:
            size: Final[int] = os.fstat(fh.fileno()).st_size
            cap: Final[int] = 2 * size.bit_length() + 16
            lo: int = 0
            hi: int = size
            probes: int = 0

            while lo < hi:
                probes += 1
                if probes > cap:
                    self.log.warning("Giving up search in %s after %d probes",
                                     self.path,
                                     cap)
                    return None

                mid: int = (lo + hi) // 2
                start, end, raw = self._line_at(fh, mid)
                if start >= hi or raw == b"":
                    hi = mid
                    continue

                fields = self._parse(raw)
                match compare(fields):
                    case None:
                        lo = end
                    case -1:
                        hi = start
                    case 1:
                        lo = end
                    case 0:
                        return fields
        return None


@dataclass(kw_only=True, slots=True)
class GeoDB:
    """GeoDB answers Geo and ASN questions from the range files in one folder.

    CC_SRC selects the data source, 1 for MaxMind GeoLite2, 2 for db-ip.com.
    """

    folder: Path
    source: str = "1"
    log: logging.Logger = field(default_factory=lambda: common.get_logger("geo"))
    _countries: Optional[dict[str, str]] = field(default=None, init=False, repr=False)

    @classmethod
    def from_config(cls, cfg: Config) -> 'GeoDB':
        """Create a GeoDB as configured."""
        return cls(folder=cfg.geo_dir(), source=cfg.string("CC_SRC") or "1")

    def _file(self, name: str, delimiter: str = ",") -> RangeFile:
        return RangeFile(path=self.folder / name, delimiter=delimiter, log=self.log)

    def lookup(self, addr: Address, level: Level) -> GeoRecord:
        """Look up <addr> at the given level of detail.

        Non-public addresses yield an empty GeoRecord. Raise GeoDBError if a
        file that is needed cannot be read.
        """
        if level == Level.Off or not addr.public:
            return GeoRecord()

        ip: Final[IPAddr] = addr.ip
        match self.source:
            case "2":
                rec = self._dbip(ip, level)
                if level == Level.ASN:
                    rec.asn = self._ip2asn(ip)
            case _:
                rec = self._maxmind(ip, level)
                if level == Level.ASN:
                    rec.asn = self._maxmind_asn(ip)
        return rec

    def _maxmind(self, ip: IPAddr, level: Level) -> GeoRecord:
        kind: Final[str] = "Country" if level == Level.Country else "City"
        blocks = self._file(f"GeoLite2-{kind}-Blocks-IPv{ip.version}.csv")
        row = blocks.search(cidr_comparator(ip))
        if row is None or len(row) < 2:
            return GeoRecord()

        geoid: str = row[1]
        if geoid == "" and len(row) > 2:
            geoid = row[2]
        if not geoid.isdigit():
            return GeoRecord()

        locations = self._file(f"GeoLite2-{kind}-Locations-en.csv")
        loc = locations.search(id_comparator(int(geoid)))
        if loc is None or len(loc) < 6:
            return GeoRecord()

        rec = GeoRecord(country_code=loc[4], country_name=loc[5])
        if len(loc) > 10:
            region: str = loc[9]
            if region == "" or region == loc[10]:
                region = loc[7]
            rec.region = region
            rec.city = loc[10]
        return rec

    def _maxmind_asn(self, ip: IPAddr) -> str:
        row = self._file(f"GeoLite2-ASN-Blocks-IPv{ip.version}.csv").search(cidr_comparator(ip))
        if row is None or len(row) < 3:
            return ""
        return f"AS{row[1]} {row[2]}"

    def country_names(self) -> dict[str, str]:
        """Return the mapping of country codes to names from countryInfo.txt."""
        if self._countries is not None:
            return self._countries

        names: dict[str, str] = {}
        path: Final[Path] = self.folder / "countryInfo.txt"
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as fh:
                for line in fh:
                    if line == "" or line.startswith("#") or line[:1].isspace():
                        continue
                    cols = line.rstrip("\r\n").split("\t")
                    if len(cols) > 4 and cols[0] != "" and cols[4] != "":
                        names[cols[0]] = cols[4]
        except OSError as err:
            raise GeoDBError(f"Cannot open {path}: {err}") from err

        self._countries = names
        return names

    def _dbip(self, ip: IPAddr, level: Level) -> GeoRecord:
        names: Final[dict[str, str]] = self.country_names()
        if level == Level.Country:
            row = self._file("dbip-country-lite.csv").search(range_comparator(ip))
            if row is None or len(row) < 3:
                return GeoRecord()
            cc, region, city = row[2], "", ""
        else:
            row = self._file("dbip-city-lite.csv").search(range_comparator(ip))
            if row is None or len(row) < 6:
                return GeoRecord()
            cc, region, city = row[3], row[4], row[5]

        if cc in ("", "ZZ"):
            return GeoRecord()
        return GeoRecord(country_code=cc,
                         country_name=names.get(cc, ""),
                         region=region,
                         city=city)

    def _ip2asn(self, ip: IPAddr) -> str:
        row = self._file("ip2asn-combined.tsv", "\t").search(range_comparator(ip))
        if row is None or len(row) < 5 or row[2] == "0":
            return ""
        return f"AS{row[2]} {row[4]}"


# Local Variables: #
# python-indent: 4 #
# End: #
