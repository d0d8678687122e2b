#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-12 19:55:31 krylon>
#
# /data/code/python/pywarden/enrich.py
# created on 20. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.enrich

(c) 2026 Benjamin Walkenhorst
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Final, Iterable, Optional

from pywarden import common
from pywarden.cache import CacheError, GeoMemo
from pywarden.config import Config
from pywarden.flatcache import DNSCache
from pywarden.geo import GeoDB, GeoDBError, Level
from pywarden.model import Address, GeoRecord, ReputationRecord
from pywarden.rbl import (LookupTimeout, RBLChecker, RBLResolver,
                          ResolverError, make_resolver)


class LookupMode(Enum):
    """LookupMode says how much we want to know about an address.

    CountryCode only consults the Geo databases, Geo adds the hostname, Full
    adds the RBL results.
    """

    CountryCode = auto()
    Geo = auto()
    Full = auto()


@dataclass(kw_only=True, slots=True)
class HostnameLookup:
    """HostnameLookup resolves addresses to hostnames, remembering the results."""

    resolver: RBLResolver
    cache: DNSCache = field(default_factory=DNSCache)
    timeout: float = 10
    log: logging.Logger = field(default_factory=lambda: common.get_logger("enrich"))

    def lookup(self, addr: Address) -> str:
        """Return the hostname of <addr>, or "-" if it has none."""
        cached: Final[Optional[str]] = self.cache.get(addr.host)
        if cached is not None:
            return cached or "-"

        host: str = ""
        try:
            host = self.resolver.hostname(addr.host, self.timeout)
        except LookupTimeout as terr:
            self.log.debug("Reverse lookup of %s timed out: %s", addr, terr)
        except ResolverError as err:
            self.log.error("Reverse lookup of %s failed: %s", addr, err)

        self.cache.put(addr.host, host)
        return host or "-"


@dataclass(kw_only=True, slots=True)
class Enricher:
    """Enricher gathers what the Geo databases, DNS and the RBLs know about an address.

    Each source is consulted separately, so one failing does not prevent the
    others from contributing.
    """

    cfg: Config
    geo: GeoDB
    rbl: Optional[RBLChecker] = None
    hostnames: Optional[HostnameLookup] = None
    memo: Optional[GeoMemo] = None
    workers: int = 8
    log: logging.Logger = field(default_factory=lambda: common.get_logger("enrich"))

    @classmethod
    def from_config(cls, cfg: Config, memo: bool = True) -> 'Enricher':
        """Create an Enricher as configured."""
        log: Final[logging.Logger] = common.get_logger("enrich")
        db: Optional[GeoMemo] = None
        if memo:
            try:
                db = GeoMemo.open(cfg.integer("GEO_CACHE_TTL", 86400))
                db.expire()
            except CacheError as err:
                log.error("Cannot open Geo cache: %s", err)

        return cls(cfg=cfg,
                   geo=GeoDB.from_config(cfg),
                   rbl=RBLChecker.from_config(cfg),
                   hostnames=HostnameLookup(resolver=make_resolver(cfg),
                                            timeout=cfg.integer("DNS_TIMEOUT", 10)),
                   memo=db,
                   workers=max(cfg.integer("RBL_WORKERS", 8), 1),
                   log=log)

    def level(self, addr: Address) -> Level:
        """Return the level of Geo detail configured for <addr>."""
        val: Final[int] = self.cfg.integer("CC_LOOKUPS")
        if val not in (1, 2, 3):
            if val != 0:
                self.log.warning("Unsupported value %d for CC_LOOKUPS", val)
            return Level.Off
        if addr.version == 6 and not self.cfg.flag("CC6_LOOKUPS"):
            return Level.Off
        return Level(val)

    def geo_lookup(self, addr: Address, level: Level) -> GeoRecord:
        """Look up <addr> in the Geo databases, or in the memo cache if we did before."""
        if level == Level.Off or not addr.public:
            return GeoRecord()

        if self.memo is not None:
            cached: Final[Optional[GeoRecord]] = self.memo.get(addr, level.value)
            if cached is not None:
                return cached

        try:
            rec = self.geo.lookup(addr, level)
        except GeoDBError as err:
            self.log.error("Geo lookup of %s failed: %s", addr, err)
            return GeoRecord()

        if self.memo is not None and not rec.empty:
            self.memo.put(addr, level.value, rec)
        return rec

    def enrich(self, addr: Address, mode: LookupMode = LookupMode.Full) -> ReputationRecord:
        """Find out what we can about <addr>."""
        rec = ReputationRecord(address=addr)
        rec.geo = self.geo_lookup(addr, self.level(addr))

        if mode == LookupMode.CountryCode:
            return rec

        if self.hostnames is not None and self.cfg.flag("LF_LOOKUPS"):
            rec.hostname = self.hostnames.lookup(addr)

        if mode == LookupMode.Full and self.rbl is not None and len(self.rbl.zones) > 0:
            rec.rbl = self.rbl.check(addr)

        return rec

    def enrich_all(self,
                   addresses: Iterable[Address],
                   mode: LookupMode = LookupMode.Full) -> list[ReputationRecord]:
        """Enrich several addresses in parallel. The results are in the same order."""
        addrs: Final[list[Address]] = list(addresses)
        if not addrs:
            return []
        with ThreadPoolExecutor(max_workers=min(self.workers, len(addrs)),
                                thread_name_prefix="enrich") as pool:
            return list(pool.map(lambda a: self.enrich(a, mode), addrs))

    def describe(self, addr: Address) -> str:
        """Return the classic one-line description of <addr>.

        Depending on the configuration, this looks like
        "1.2.3.4 (US/United States/California/Los Angeles/host.example.com/[AS1 Org])".
        """
        return self.summary(self.enrich(addr, LookupMode.Geo))

    def summary(self, rec: ReputationRecord) -> str:
        """Format a ReputationRecord the way describe() does."""
        addr: Final[Address] = rec.address
        level: Final[Level] = self.level(addr)
        host: str = rec.hostname or "-"

        if level != Level.Off:
            cc, name, region, city = (x or "-" for x in (rec.country_code,
                                                           rec.country_name,
                                                           rec.region,
                                                           rec.city))
            asn: Final[str] = f"[{rec.asn}]" if rec.asn else "-"
            if cc == "-":
                out = f"{addr} ({host})"
            elif level == Level.ASN:
                out = f"{addr} ({cc}/{name}/{region}/{city}/{host}/{asn})"
            elif level == Level.City:
                out = f"{addr} ({cc}/{name}/{region}/{city}/{host})"
            else:
                out = f"{addr} ({cc}/{name}/{host})"
            return out.replace("'", "").replace('"', "")

        if self.cfg.flag("LF_LOOKUPS"):
            if host == "-":
                host = "Unknown"
            return f"{addr} ({host})".replace("'", "")

        return str(addr)


# Local Variables: #
# python-indent: 4 #
# End: #
