#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-10 18:36:12 krylon>
#
# /data/code/python/pywarden/flatcache.py
# created on 18. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.flatcache

(c) 2026 Benjamin Walkenhorst

Append-only, line-oriented cache files, shared with other processes through
advisory locks: readers hold a shared lock while scanning, writers an
exclusive lock while appending. Rows are never updated in place, so the first
matching row wins.
"""

import fcntl
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Iterator, Optional, Sequence

from pywarden import common
from pywarden.model import RBLResult

SEP: Final[str] = "|"
TXT_SEP: Final[str] = "\t"


@dataclass(kw_only=True, slots=True)
class FlatFile:
    """FlatFile is one append-only cache file."""

    path: Path
    log: logging.Logger = field(default_factory=lambda: common.get_logger("flatcache"))

    def exists(self) -> bool:
        """Return True if the file exists."""
        return os.path.isfile(self.path)

    def rows(self) -> Iterator[list[str]]:
        """Yield the rows of the file, split on the field separator.

        A missing file has no rows.
        """
        try:
            fh = open(self.path, "r", encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return

        with fh:
            fcntl.flock(fh.fileno(), fcntl.LOCK_SH)
            try:
                for line in fh:
                    line = line.rstrip("\r\n")
                    if line == "":
                        continue
                    yield line.split(SEP)
            finally:
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)

    def append(self, rows: Sequence[Sequence[str]]) -> bool:
        """Append <rows> to the file.

        Errors are logged, not raised, since losing a cache entry does no harm.
        Return True if the rows were written.
        """
        if not rows:
            return True
        data: Final[str] = "".join(SEP.join(r) + "\n" for r in rows)
        try:
            with open(self.path, "a", encoding="utf-8") as fh:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
                try:
                    fh.write(data)
                    fh.flush()
                finally:
                    fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        except OSError as err:
            self.log.error("%s appending to cache file %s: %s",
                           err.__class__.__name__,
                           self.path,
                           err)
            return False
        return True

    def remove(self) -> None:
        """Delete the file, if it exists."""
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass


@dataclass(kw_only=True, slots=True)
class DNSCache:
    """DNSCache remembers the hostnames of addresses, one addr|addr|host row each."""

    path: Path = field(default_factory=lambda: common.path.dnscache)
    log: logging.Logger = field(default_factory=lambda: common.get_logger("flatcache"))

    def _file(self) -> FlatFile:
        return FlatFile(path=self.path, log=self.log)

    def get(self, addr: str) -> Optional[str]:
        """Return the cached hostname for <addr>, or None on a cache miss."""
        for row in self._file().rows():
            if len(row) >= 3 and row[0] == addr:
                return row[2]
        return None

    def put(self, addr: str, host: str) -> bool:
        """Record the hostname for <addr>."""
        return self._file().append([(addr, addr, host)])


@dataclass(kw_only=True, slots=True)
class RBLCache:
    """RBLCache keeps the RBL results of each address in a file of its own.

    Each row is addr|zone|hit|explanations, with the explanations separated
    by tabs.
    """

    folder: Path = field(default_factory=lambda: common.path.rbl)
    log: logging.Logger = field(default_factory=lambda: common.get_logger("flatcache"))

    def file_for(self, addr: str) -> FlatFile:
        """Return the cache file for <addr>."""
        name: Final[str] = addr.replace("/", "_") + ".rbls"
        return FlatFile(path=self.folder / name, log=self.log)

    def has(self, addr: str) -> bool:
        """Return True if there are cached results for <addr>."""
        return self.file_for(addr).exists()

    def get(self, addr: str) -> list[RBLResult]:
        """Return the cached results for <addr>.

        If a zone occurs more than once, the first row wins.
        """
        results: list[RBLResult] = []
        seen: set[str] = set()
        for row in self.file_for(addr).rows():
            if len(row) < 3 or row[0] != addr or row[1] in seen:
                continue
            seen.add(row[1])
            expl: list[str] = []
            if len(row) > 3 and row[3] != "":
                expl = SEP.join(row[3:]).split(TXT_SEP)
            results.append(RBLResult(zone=row[1], hit=row[2], explanations=expl))
        return results

    def put(self, addr: str, results: Sequence[RBLResult]) -> bool:
        """Append <results> to the cache file for <addr>."""
        rows: Final[list[tuple[str, ...]]] = [
            (addr,
             r.zone,
             r.hit,
             TXT_SEP.join(x.replace("\n", " ").replace(TXT_SEP, " ") for x in r.explanations))
            for r in results]
        return self.file_for(addr).append(rows)

    def clear(self, addr: str) -> None:
        """Remove the cached results for <addr>."""
        self.file_for(addr).remove()


# Local Variables: #
# python-indent: 4 #
# End: #
