#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-11 20:48:03 krylon>
#
# /data/code/python/pywarden/rbl.py
# created on 19. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.rbl

(c) 2026 Benjamin Walkenhorst

Look up addresses in DNS blocklists (RBLs). Every query gets its own deadline;
a query that misses it yields the TIMEOUT sentinel instead of a result, and is
not retried.
"""

import logging
import os
import re
import subprocess
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Iterable, Iterator, Optional, Union

from dns.exception import DNSException, Timeout
from dns.rcode import Rcode
from dns.resolver import (NXDOMAIN, Answer, LifetimeTimeout, NoAnswer,
                          NoNameservers, Resolver)

from pywarden import checkip, common
from pywarden.common import WardenError
from pywarden.config import Config
from pywarden.flatcache import RBLCache
from pywarden.model import TIMEOUT, Address, RBLResult, RBLStatus

default_zones: Final[tuple[str, ...]] = (
    "b.barracudacentral.org:https://www.barracudacentral.org/rbl/removal-request",
    "bl.spamcop.net:https://www.spamcop.net/bl.shtml",
    "dnsbl.dronebl.org:https://dronebl.org/lookup",
    "psbl.surriel.com:https://psbl.org/",
    "zen.spamhaus.org:https://check.spamhaus.org/",
)

_ptr_pat: Final[re.Pattern] = re.compile(r"(\S+)\.$")


class LookupTimeout(WardenError):
    """LookupTimeout indicates a DNS query that did not finish in time."""


class ResolverError(WardenError):
    """ResolverError indicates a DNS query that could not be performed."""


def reverse_name(addr: Union[Address, str]) -> str:
    """Return the reversed form of <addr> as used in RBL queries.

    IPv4 addresses have their octets reversed, IPv6 addresses their nibbles.
    The in-addr.arpa or ip6.arpa suffix is not included.
    """
    if isinstance(addr, str):
        val = checkip.validate(addr)
        if val is None:
            raise ValueError(f"Invalid address {addr!r}")
        addr = val
    rev: Final[str] = addr.ip.reverse_pointer
    return rev.removesuffix(".in-addr.arpa").removesuffix(".ip6.arpa")


class RBLResolver:
    """RBLResolver is the interface of the resolvers we use for RBL and PTR lookups.

    All methods raise LookupTimeout if the query did not finish in <timeout>
    seconds, and ResolverError if it could not be performed at all.
    """

    def address(self, name: str, timeout: float) -> str:
        """Return the address <name> resolves to, or an empty string."""
        raise NotImplementedError

    def text(self, name: str, timeout: float) -> list[str]:
        """Return the TXT records of <name>."""
        raise NotImplementedError

    def hostname(self, addr: str, timeout: float) -> str:
        """Return the name <addr> resolves to, or an empty string."""
        raise NotImplementedError


@dataclass(kw_only=True, slots=True)
class HostCommandResolver(RBLResolver):
    """HostCommandResolver runs the host(1) utility for each query.

    If a query runs past its deadline, the child process is killed and reaped
    before LookupTimeout is raised.
    """

    binary: str = "/usr/bin/host"
    log: logging.Logger = field(default_factory=lambda: common.get_logger("rbl"))

    def _run(self, args: list[str], timeout: float) -> list[str]:
        try:
            proc = subprocess.Popen([self.binary, *args],
                                    stdin=subprocess.DEVNULL,
                                    stdout=subprocess.PIPE,
                                    stderr=subprocess.STDOUT,
                                    text=True)
        except OSError as err:
            raise ResolverError(f"Cannot run {self.binary}: {err}") from err

        try:
            out, _ = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as terr:
            proc.kill()
            if proc.stdout is not None:
                proc.stdout.close()
            proc.wait()
            raise LookupTimeout(f"{self.binary} {' '.join(args)} did not finish "
                                f"within {timeout} seconds") from terr
        return out.splitlines()

    def address(self, name: str, timeout: float) -> str:
        lines: Final[list[str]] = self._run(["-t", "A", name], timeout)
        if not lines:
            return ""
        pat: Final[re.Pattern] = re.compile(
            f"^{re.escape(name)}.+ ({checkip.ipv4reg}|{checkip.ipv6reg})$")
        m = pat.match(lines[0])
        if m is None:
            return ""
        return m[1]

    def text(self, name: str, timeout: float) -> list[str]:
        pat: Final[re.Pattern] = re.compile(f'^{re.escape(name)}.+ "([^"]+)"$')
        txt: list[str] = []
        for line in self._run(["-t", "TXT", name], timeout):
            m = pat.match(line)
            if m is not None:
                txt.append(m[1])
        return txt

    def hostname(self, addr: str, timeout: float) -> str:
        lines: Final[list[str]] = self._run(["-W", str(max(int(timeout) // 2, 1)), addr], timeout)
        if not lines:
            return ""
        m = _ptr_pat.search(lines[0])
        if m is None:
            return ""
        return m[1]


@dataclass(kw_only=True, slots=True)
class DNSPythonResolver(RBLResolver):
    """DNSPythonResolver performs the queries itself, using dnspython."""

    log: logging.Logger = field(default_factory=lambda: common.get_logger("rbl"))
    res: Resolver = field(init=False)

    def __post_init__(self) -> None:
        self.res = Resolver()

    def _resolve(self, name: str, rtype: str, timeout: float) -> Optional[Answer]:
        try:
            return self.res.resolve(name, rtype, lifetime=timeout)
        except (LifetimeTimeout, Timeout) as terr:
            raise LookupTimeout(f"Query {name}/{rtype} timed out: {terr}") from terr
        except (NXDOMAIN, NoAnswer):
            return None
        except NoNameservers as fail:
            self.log.error("Failed to get a response for %s from upstream resolver(s): %s",
                           name,
                           fail)
            return None
        except DNSException as err:
            raise ResolverError(f"{err.__class__.__name__} resolving {name}/{rtype}: {err}") \
                from err

    def address(self, name: str, timeout: float) -> str:
        answer = self._resolve(name, "A", timeout)
        if answer is None or answer.rrset is None or len(answer.rrset) == 0:
            return ""
        return answer.rrset[0].to_text()

    def text(self, name: str, timeout: float) -> list[str]:
        answer = self._resolve(name, "TXT", timeout)
        if answer is None or answer.rrset is None:
            return []
        return ["".join(s.decode("utf-8", errors="replace") for s in rdata.strings)
                for rdata in answer.rrset]

    def hostname(self, addr: str, timeout: float) -> str:
        try:
            answer: Answer = self.res.resolve_address(addr, lifetime=timeout)
        except (LifetimeTimeout, Timeout) as terr:
            raise LookupTimeout(f"Reverse lookup of {addr} timed out: {terr}") from terr
        except (NXDOMAIN, NoAnswer):
            return ""
        except NoNameservers as fail:
            self.log.error("Failed to get a response for %s from upstream resolver(s): %s",
                           addr,
                           fail)
            return ""
        except DNSException as err:
            raise ResolverError(f"{err.__class__.__name__} resolving {addr}: {err}") from err

        match answer.response.rcode():
            case Rcode.NOERROR if answer.rrset is not None:
                return answer.rrset[0].to_text().rstrip(".")
            case _:
                self.log.error("Unexpected response code %s",
                               answer.response.rcode())
        return ""


def make_resolver(cfg: Config) -> RBLResolver:
    """Return a HostCommandResolver if the configured host binary is usable,
    a DNSPythonResolver otherwise."""
    binary: Final[str] = cfg.string("HOST")
    if binary != "" and os.path.isfile(binary) and os.access(binary, os.X_OK):
        return HostCommandResolver(binary=binary)
    return DNSPythonResolver()


def rbl_lookup(addr: Union[Address, str],
               zone: str,
               timeout: float,
               resolver: RBLResolver,
               log: Optional[logging.Logger] = None) -> tuple[str, list[str]]:
    """Look up <addr> in the RBL <zone>.

    Return the address the zone returned and the explanations from its TXT
    record. An address that is not listed yields an empty string, a query
    that runs out of time yields TIMEOUT. A failed TXT query does not change
    the result of the address query.
    """
    if isinstance(addr, str):
        val = checkip.validate(addr)
        if val is None:
            return "", []
        addr = val

    name: Final[str] = f"{reverse_name(addr)}.{zone}"
    try:
        hit = resolver.address(name, timeout)
    except LookupTimeout:
        return TIMEOUT, []
    except ResolverError as err:
        if log is not None:
            log.error("Cannot look up %s: %s", name, err)
        return "", []

    if hit == "":
        return "", []

    try:
        txt = resolver.text(name, timeout)
    except (LookupTimeout, ResolverError) as err:
        if log is not None:
            log.debug("Cannot get TXT record for %s: %s", name, err)
        txt = []

    return hit, txt


@dataclass(frozen=True, slots=True)
class Zone:
    """Zone is an RBL, with the URL of its web page if we know it."""

    name: str
    url: str = ""

    @classmethod
    def parse(cls, line: str) -> 'Zone':
        """Parse a zone:url line."""
        name, _, url = line.partition(":")
        return cls(name.strip(), url.strip())


@dataclass(kw_only=True, slots=True)
class ZoneList:
    """ZoneList is the list of RBLs to check, sorted by name.

    Besides the zones, the override file can add addresses to check
    (enableip:) or exclude local addresses from the check (disableip:).
    """

    zones: list[Zone] = field(default_factory=list)
    enabled_ips: set[str] = field(default_factory=set)
    disabled_ips: set[str] = field(default_factory=set)
    log: logging.Logger = field(default_factory=lambda: common.get_logger("rbl"))

    def __iter__(self) -> Iterator[Zone]:
        return iter(self.zones)

    def __len__(self) -> int:
        return len(self.zones)

    @classmethod
    def from_config(cls, cfg: Config) -> 'ZoneList':
        """Load the zones files named in the configuration."""
        zfile: Final[str] = cfg.string("RBL_ZONES_FILE")
        cfile: Final[str] = cfg.string("RBL_CONF_FILE")
        return cls.load(Path(zfile) if zfile else None,
                        Path(cfile) if cfile else None)

    @classmethod
    def load(cls,
             zones_file: Optional[Path] = None,
             conf_file: Optional[Path] = None) -> 'ZoneList':
        """Load the default zones and apply the overrides.

        If <zones_file> is None, a built-in list of zones is used.
        """
        zl = cls()
        lines: list[str]
        if zones_file is None:
            lines = list(default_zones)
        else:
            lines = zl._read(zones_file, set())
        entries: list[Zone] = [Zone.parse(x) for x in lines
                               if x.strip() != "" and not x.lstrip().startswith("#")]

        if conf_file is not None and os.path.exists(conf_file):
            for line in zl._read(conf_file, set()):
                line = line.strip()
                if line == "" or line.startswith("#"):
                    continue
                key, _, val = line.partition(":")
                match key:
                    case "enablerbl":
                        entries.append(Zone.parse(val))
                    case "disablerbl":
                        entries = [z for z in entries if z.name != val.strip()]
                    case "enableip":
                        addr = checkip.validate(val.strip())
                        if addr is not None:
                            zl.enabled_ips.add(addr.text)
                            zl.disabled_ips.discard(addr.text)
                    case "disableip":
                        addr = checkip.validate(val.strip())
                        if addr is not None:
                            zl.disabled_ips.add(addr.text)
                            zl.enabled_ips.discard(addr.text)
                    case _:
                        zl.log.debug("Ignore unknown RBL setting %r", line)

        zl.zones = sorted((z for z in entries if z.name != ""), key=lambda z: z.name)
        return zl

    def _read(self, path: Path, seen: set[str]) -> list[str]:
        """Read the lines of <path>, with Include lines replaced by the named file."""
        real: Final[str] = os.path.realpath(path)
        if real in seen:
            self.log.error("Recursive Include of %s", path)
            return []
        seen.add(real)

        try:
            with open(path, "r", encoding="utf-8", errors="replace") as fh:
                raw: Final[list[str]] = fh.read().splitlines()
        except OSError as err:
            self.log.error("%s reading %s: %s",
                           err.__class__.__name__,
                           path,
                           err)
            return []

        lines: list[str] = []
        for line in raw:
            m = re.match(r"^Include\s*(.*)$", line.strip())
            if m is not None:
                lines.extend(self._read(Path(m[1].strip()), seen))
            else:
                lines.append(line)
        return lines

    def addresses(self, local: Iterable[str]) -> list[str]:
        """Return the addresses to check, sorted.

        That is <local> plus the enabled addresses, minus the disabled ones.
        """
        addrs: set[str] = set(local) | self.enabled_ips
        return sorted(addrs - self.disabled_ips)


@dataclass(kw_only=True, slots=True)
class RBLChecker:
    """RBLChecker looks up addresses in all zones of a ZoneList."""

    zones: ZoneList
    resolver: RBLResolver
    timeout: float = 4
    workers: int = 8
    cache: RBLCache = field(default_factory=RBLCache)
    log: logging.Logger = field(default_factory=lambda: common.get_logger("rbl"))

    @classmethod
    def from_config(cls, cfg: Config) -> 'RBLChecker':
        """Create an RBLChecker as configured."""
        return cls(zones=ZoneList.from_config(cfg),
                   resolver=make_resolver(cfg),
                   timeout=cfg.integer("RBL_TIMEOUT", 4),
                   workers=max(cfg.integer("RBL_WORKERS", 8), 1))

    def _query(self, addr: Address) -> list[RBLResult]:
        zones: Final[list[Zone]] = list(self.zones)
        if not zones:
            return []

        with ThreadPoolExecutor(max_workers=min(self.workers, len(zones)),
                                thread_name_prefix="rbl") as pool:
            futures = [pool.submit(rbl_lookup, addr, z.name, self.timeout, self.resolver, self.log)
                       for z in zones]
            results: list[RBLResult] = []
            for z, fut in zip(zones, futures):
                hit, txt = fut.result()
                results.append(RBLResult(zone=z.name, url=z.url, hit=hit, explanations=txt))
        return results

    def check(self, addr: Address, force: bool = False) -> list[RBLResult]:
        """Look up <addr> in all zones, returning the results in zone order.

        Unless <force> is True, results from a previous check are taken from
        the cache.
        """
        if not force and self.cache.has(addr.text):
            urls: Final[dict[str, str]] = {z.name: z.url for z in self.zones}
            cached = self.cache.get(addr.text)
            for res in cached:
                res.url = urls.get(res.zone, "")
            self.log.debug("Found %d cached RBL results for %s",
                           len(cached),
                           addr)
            return cached

        results: Final[list[RBLResult]] = self._query(addr)
        if force:
            self.cache.clear(addr.text)
        self.cache.put(addr.text, results)
        return results

    def report(self, addresses: Iterable[str], verbose: int = 0) -> tuple[int, list[str]]:
        """Check the server's own addresses.

        Only public addresses are checked. Addresses without cached results
        are only checked if <verbose> is set, which also discards the cached
        results. With <verbose> == 2, addresses that are not listed and
        non-public addresses are reported as well.
        Return the number of listings found and the lines of the report.
        """
        failures: int = 0
        lines: list[str] = []

        for text in sorted(set(addresses)):
            addr = checkip.validate(text)
            if addr is None:
                continue
            if not addr.public:
                if verbose == 2:
                    lines.append(f"Skipping {addr} ({addr.kind.name})")
                    lines.append("OK")
                continue

            if verbose:
                self.cache.clear(addr.text)

            if self.cache.has(addr.text):
                lines.append(f"Cached {addr} ({addr.kind.name})")
                results = self.check(addr)
            elif verbose:
                lines.append(f"Checked {addr} ({addr.kind.name})")
                results = self.check(addr, force=True)
            else:
                lines.append(f"New {addr} ({addr.kind.name})")
                lines.append("Not Checked")
                continue

            hits: int = 0
            for res in results:
                match res.status:
                    case RBLStatus.Listed:
                        hits += 1
                        expl = " ".join(res.explanations)
                        lines.append(f"{res.zone}: LISTED {res.hit} {expl}".rstrip())
                    case RBLStatus.Timeout if verbose:
                        lines.append(f"{res.zone}: TIMEOUT")
                    case RBLStatus.NotListed if verbose == 2:
                        lines.append(f"{res.zone}: OK")
            if hits == 0:
                lines.append("OK")
            failures += hits

        return failures, lines


# Local Variables: #
# python-indent: 4 #
# End: #
