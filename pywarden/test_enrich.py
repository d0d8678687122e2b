#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-15 18:30:44 krylon>
#
# /data/code/python/pywarden/test_enrich.py
# created on 21. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.test_enrich

(c) 2026 Benjamin Walkenhorst
"""

import os
import shutil
import unittest
from datetime import datetime
from pathlib import Path
from typing import Any, Final, Optional

from pywarden import checkip, common
from pywarden.cache import GeoMemo
from pywarden.config import Config
from pywarden.enrich import Enricher, HostnameLookup, LookupMode
from pywarden.flatcache import DNSCache, RBLCache
from pywarden.geo import GeoDB, Level
from pywarden.model import Address, RBLStatus
from pywarden.rbl import LookupTimeout, RBLChecker, RBLResolver, Zone, ZoneList

test_dir: Final[str] = os.path.join(
    "/tmp",
    datetime.now().strftime(f"{common.AppName.lower()}_test_enrich_%Y%m%d_%H%M%S"))

geo_files: Final[dict[str, str]] = {
    "GeoLite2-Country-Blocks-IPv4.csv": """network,geoname_id,registered_country_geoname_id
8.8.8.0/24,6252001,6252001
""",
    "GeoLite2-Country-Locations-en.csv": """geoname_id,locale_code,continent_code,continent_name,country_iso_code,country_name,is_in_european_union
6252001,en,NA,"North America",US,"United's States",0
""",
    "GeoLite2-City-Blocks-IPv4.csv": """network,geoname_id,registered_country_geoname_id
8.8.8.0/24,5375480,6252001
""",
    "GeoLite2-City-Locations-en.csv": """geoname_id,locale_code,continent_code,continent_name,country_iso_code,country_name,subdivision_1_iso_code,subdivision_1_name,subdivision_2_iso_code,subdivision_2_name,city_name,metro_code,time_zone,is_in_european_union
5375480,en,NA,"North America",US,"United States",CA,California,,,"Mountain View",807,America/Los_Angeles,0
""",
    "GeoLite2-ASN-Blocks-IPv4.csv": """network,autonomous_system_number,autonomous_system_organization
8.8.8.0/24,15169,GOOGLE
""",
}


class StubResolver(RBLResolver):
    """StubResolver knows a few hostnames and lists 8.8.8.8 in every zone."""

    def __init__(self) -> None:
        self.names: dict[str, str] = {"8.8.8.8": "dns.google"}
        self.slow: set[str] = {"9.9.9.9"}
        self.ptr_queries: int = 0

    def address(self, name: str, timeout: float) -> str:
        if name.startswith("8.8.8.8."):
            return "127.0.0.2"
        return ""

    def text(self, name: str, timeout: float) -> list[str]:
        return []

    def hostname(self, addr: str, timeout: float) -> str:
        self.ptr_queries += 1
        if addr in self.slow:
            raise LookupTimeout(f"{addr} timed out")
        return self.names.get(addr, "")


def _addr(text: str) -> Address:
    addr: Optional[Address] = checkip.validate(text)
    assert addr is not None
    return addr


class TestEnricher(unittest.TestCase):
    """Test the Enricher."""

    @classmethod
    def setUpClass(cls) -> None:
        """Prepare the testing environment."""
        common.set_basedir(test_dir)

    @classmethod
    def tearDownClass(cls) -> None:
        """Clean up afterwards."""
        shutil.rmtree(test_dir, ignore_errors=True)

    def _enricher(self, name: str, memo: bool = False, **values: Any) -> Enricher:
        folder: Final[Path] = Path(test_dir, name)
        folder.mkdir()
        for fname, content in geo_files.items():
            (folder / fname).write_text(content, encoding="utf-8")

        res: Final[StubResolver] = StubResolver()
        rbls: Final[Path] = folder / "rbl"
        rbls.mkdir()
        return Enricher(
            cfg=Config(values=values),
            geo=GeoDB(folder=folder),
            rbl=RBLChecker(zones=ZoneList(zones=[Zone("zen.spamhaus.org")]),
                           resolver=res,
                           cache=RBLCache(folder=rbls)),
            hostnames=HostnameLookup(resolver=res, cache=DNSCache(path=folder / "dnscache")),
            memo=GeoMemo.open(3600, str(folder / "lmdb")) if memo else None)

    def test_01_level(self) -> None:
        """Test the level of Geo detail."""
        v4: Final[Address] = _addr("8.8.8.8")
        v6: Final[Address] = _addr("2a00:1450::1")
        test_cases: Final[list[tuple[dict[str, int], Address, Level]]] = [
            ({"CC_LOOKUPS": 0}, v4, Level.Off),
            ({"CC_LOOKUPS": 1}, v4, Level.Country),
            ({"CC_LOOKUPS": 2}, v4, Level.City),
            ({"CC_LOOKUPS": 3}, v4, Level.ASN),
            ({"CC_LOOKUPS": 4}, v4, Level.Off),
            ({"CC_LOOKUPS": 2}, v6, Level.Off),
            ({"CC_LOOKUPS": 2, "CC6_LOOKUPS": 1}, v6, Level.City),
        ]

        for idx, (values, addr, level) in enumerate(test_cases):
            with self.subTest(values=values, addr=str(addr)):
                e = self._enricher(f"level{idx}", **values)
                self.assertEqual(e.level(addr), level)

    def test_02_modes(self) -> None:
        """Test what each LookupMode looks up."""
        e = self._enricher("modes", CC_LOOKUPS=1)
        addr: Final[Address] = _addr("8.8.8.8")

        rec = e.enrich(addr, LookupMode.CountryCode)
        self.assertEqual(rec.country_code, "US")
        self.assertEqual(rec.hostname, "")
        self.assertEqual(rec.rbl, [])

        rec = e.enrich(addr, LookupMode.Geo)
        self.assertEqual(rec.hostname, "dns.google")
        self.assertEqual(rec.rbl, [])

        rec = e.enrich(addr, LookupMode.Full)
        self.assertEqual(rec.hostname, "dns.google")
        self.assertEqual(len(rec.rbl), 1)
        self.assertEqual(rec.rbl_hit, RBLStatus.Listed)

    def test_03_summary(self) -> None:
        """Test the one-line description of an address."""
        test_cases: Final[list[tuple[dict[str, int], str]]] = [
            ({"CC_LOOKUPS": 1}, "8.8.8.8 (US/Uniteds States/dns.google)"),
            ({"CC_LOOKUPS": 2}, "8.8.8.8 (US/United States/California/Mountain View/dns.google)"),
            ({"CC_LOOKUPS": 3},
             "8.8.8.8 (US/United States/California/Mountain View/dns.google/[AS15169 GOOGLE])"),
            ({"CC_LOOKUPS": 0}, "8.8.8.8 (dns.google)"),
            ({"CC_LOOKUPS": 0, "LF_LOOKUPS": 0}, "8.8.8.8"),
            ({"CC_LOOKUPS": 1, "LF_LOOKUPS": 0}, "8.8.8.8 (US/Uniteds States/-)"),
        ]

        for idx, (values, expected) in enumerate(test_cases):
            with self.subTest(values=values):
                e = self._enricher(f"summary{idx}", **values)
                self.assertEqual(e.describe(_addr("8.8.8.8")), expected)

        e = self._enricher("summary_unknown", CC_LOOKUPS=0)
        self.assertEqual(e.describe(_addr("1.1.1.1")), "1.1.1.1 (Unknown)")
        e = self._enricher("summary_nogeo", CC_LOOKUPS=1)
        self.assertEqual(e.describe(_addr("1.1.1.1")), "1.1.1.1 (-)")

    def test_04_memo(self) -> None:
        """Test that Geo results are remembered."""
        e = self._enricher("memo", memo=True, CC_LOOKUPS=2)
        addr: Final[Address] = _addr("8.8.8.8")
        self.assertEqual(e.geo_lookup(addr, Level.City).city, "Mountain View")

        os.remove(e.geo.folder / "GeoLite2-City-Blocks-IPv4.csv")
        self.assertEqual(e.geo_lookup(addr, Level.City).city, "Mountain View")

        # Country level is memoized separately and its files are still there.
        self.assertEqual(e.geo_lookup(addr, Level.Country).country_code, "US")
        # Missing files are logged, and the record is empty.
        self.assertTrue(e.geo_lookup(_addr("8.8.4.4"), Level.City).empty)

    def test_05_hostnames(self) -> None:
        """Test that hostnames are cached, including failed lookups."""
        e = self._enricher("hostnames")
        hl = e.hostnames
        assert hl is not None
        res = hl.resolver
        assert isinstance(res, StubResolver)

        self.assertEqual(hl.lookup(_addr("8.8.8.8")), "dns.google")
        self.assertEqual(hl.lookup(_addr("8.8.8.8")), "dns.google")
        self.assertEqual(hl.lookup(_addr("9.9.9.9")), "-")
        self.assertEqual(hl.lookup(_addr("9.9.9.9")), "-")
        self.assertEqual(res.ptr_queries, 2)

    def test_06_enrich_all(self) -> None:
        """Test enriching several addresses, keeping their order."""
        e = self._enricher("all", CC_LOOKUPS=1)
        addrs: Final[list[Address]] = [_addr(x) for x in ("8.8.8.8", "10.0.0.1", "1.1.1.1")]
        recs = e.enrich_all(addrs, LookupMode.Geo)
        self.assertEqual([r.address for r in recs], addrs)
        self.assertEqual(recs[0].country_code, "US")
        self.assertEqual(recs[1].country_code, "")
        self.assertEqual(e.enrich_all([]), [])

# Local Variables: #
# python-indent: 4 #
# End: #
