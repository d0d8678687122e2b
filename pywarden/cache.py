#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-03-02 19:41:08 krylon>
#
# /data/code/python/pywarden/cache.py
# created on 17. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.cache

(c) 2026 Benjamin Walkenhorst

GeoMemo remembers the results of Geo/ASN lookups in an LMDB database, so
we do not have to bisect the CSV files again for an address we looked at
recently. Entries are keyed by address and level of detail and expire after
GEO_CACHE_TTL seconds.
"""

import logging
import os
import pickle
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from threading import Lock
from typing import Final, Iterator, Optional

import lmdb

from pywarden import common
from pywarden.common import WardenError
from pywarden.model import Address, GeoRecord

_db_name: Final[bytes] = b"GeoMemo"


class CacheError(WardenError):
    """Exception class to indicate errors in the caching layer"""


@dataclass(kw_only=True, slots=True)
class GeoEntry:
    """GeoEntry is a memoized GeoRecord and the time it expires."""

    rec: GeoRecord
    expires: datetime

    def fresh(self, now: Optional[datetime] = None) -> bool:
        """Return True if the entry has not expired."""
        return self.expires > (now or datetime.now())


def _key(addr: Address, level: int) -> bytes:
    return f"{addr.host}/{level}".encode()


_envs: Final[dict[str, lmdb.Environment]] = {}
_env_lock: Final[Lock] = Lock()


def _open_env(root: str) -> lmdb.Environment:
    # A process must not open the same environment twice.
    with _env_lock:
        if root not in _envs:
            map_size: Final[int] = 1 << (32 if os.uname().machine == 'x86_64' else 28)
            try:
                _envs[root] = lmdb.Environment(root,
                                               subdir=True,
                                               map_size=map_size,
                                               metasync=False,
                                               create=True,
                                               max_dbs=2,
                                               )
            except lmdb.Error as err:
                raise CacheError(f"Cannot open cache in {root}: {err}") from err
        return _envs[root]


@dataclass(kw_only=True, slots=True)
class GeoMemo:
    """GeoMemo stores GeoRecords in LMDB for <ttl>.

    Errors from LMDB are logged and otherwise ignored: a failed lookup is
    a miss, a failed store is forgotten.
    """

    path: str
    ttl: timedelta
    env: lmdb.Environment
    db: 'lmdb._Database'
    log: logging.Logger = field(default_factory=lambda: common.get_logger("cache"))

    @classmethod
    def open(cls, ttl: int, cache_root: str = "") -> 'GeoMemo':
        """Open the memo in <cache_root>, the lmdb folder in the cache dir by default.

        <ttl> is the lifetime of an entry in seconds.
        """
        if cache_root == "":
            cache_root = str(common.path.cache.joinpath("lmdb"))
        env: Final[lmdb.Environment] = _open_env(cache_root)
        try:
            db = env.open_db(_db_name)
        except lmdb.Error as err:
            raise CacheError(f"Cannot open {_db_name.decode()} in {cache_root}: {err}") from err
        return cls(path=cache_root, ttl=timedelta(seconds=ttl), env=env, db=db)

    @contextmanager
    def tx(self, rw: bool = False) -> Iterator[lmdb.Transaction]:
        """Perform a database transaction. Unless rw is True, no changes are permitted.

        If LMDB fails, the transaction is aborted and the error logged.
        """
        tx: lmdb.Transaction = self.env.begin(write=rw, db=self.db)
        try:
            yield tx
        except (lmdb.Error, pickle.PickleError) as err:
            cname: Final[str] = err.__class__.__name__
            self.log.error("Abort transaction due to %s: %s", cname, err)
            tx.abort()
        else:
            tx.commit()

    def get(self, addr: Address, level: int) -> Optional[GeoRecord]:
        """Return the memoized record for <addr> at <level>, if it is still fresh."""
        entry: Optional[GeoEntry] = None
        with self.tx() as tx:
            raw = tx.get(_key(addr, level))
            if raw is not None:
                entry = pickle.loads(raw)
        if entry is None or not entry.fresh():
            return None
        return entry.rec

    def put(self, addr: Address, level: int, rec: GeoRecord) -> None:
        """Remember <rec> as the record for <addr> at <level>."""
        entry: Final[GeoEntry] = GeoEntry(rec=rec, expires=datetime.now() + self.ttl)
        with self.tx(True) as tx:
            tx.put(_key(addr, level), pickle.dumps(entry), overwrite=True)

    def expire(self) -> int:
        """Remove the entries that have expired.

        Return the number of entries removed.
        """
        now: Final[datetime] = datetime.now()
        stale: list[bytes] = []
        with self.tx(True) as tx:
            for key, raw in tx.cursor():
                try:
                    entry: GeoEntry = pickle.loads(raw)
                except pickle.PickleError as err:
                    self.log.error("Cannot de-serialize memo entry %s: %s", key, err)
                    stale.append(key)
                    continue
                if not entry.fresh(now):
                    stale.append(key)

            for key in stale:
                tx.delete(key)
        self.log.debug("Removed %d expired entries from %s", len(stale), self.path)
        return len(stale)


# Local Variables: #
# python-indent: 4 #
# End: #
