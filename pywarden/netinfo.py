#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-06 20:14:02 krylon>
#
# /data/code/python/pywarden/netinfo.py
# created on 15. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.netinfo

(c) 2026 Benjamin Walkenhorst
"""

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from typing import Final, Optional

from pywarden import checkip, common
from pywarden.config import Config
from pywarden.model import AddressKind

_iface_pat: Final[re.Pattern] = re.compile(r"^\d+:\s+([\w.\-]+)")

BROADCAST_ALL: Final[str] = "255.255.255.255"


@dataclass(frozen=True, slots=True, kw_only=True)
class NetSnapshot:
    """NetSnapshot is the set of local interfaces and addresses at one point in time."""

    interfaces: frozenset[str] = frozenset()
    ipv4: frozenset[str] = frozenset()
    ipv6: frozenset[str] = frozenset()
    loopback: frozenset[str] = frozenset()
    broadcast: frozenset[str] = frozenset({BROADCAST_ALL})

    def is_local(self, addr: str) -> bool:
        """Return True if <addr> is assigned to a local interface.

        Loopback addresses count as local, though they are kept out of the
        ipv4 and ipv6 sets.
        """
        return addr in self.ipv4 or addr in self.ipv6 or addr in self.loopback

    def is_broadcast(self, addr: str) -> bool:
        """Return True if <addr> is a broadcast address of a local network."""
        return addr in self.broadcast

    @classmethod
    def parse(cls, output: str) -> 'NetSnapshot':
        """Parse the output of "ip -oneline addr"."""
        ifaces: set[str] = set()
        v4: set[str] = set()
        v6: set[str] = set()
        lo: set[str] = set()
        brd: set[str] = {BROADCAST_ALL}

        for line in output.splitlines():
            m = _iface_pat.match(line)
            if m is not None:
                ifaces.add(m[1])

            words: list[str] = line.split()
            for idx, word in enumerate(words[:-1]):
                val: str = words[idx+1].split("/")[0]
                match word:
                    case "inet":
                        addr = checkip.validate(val)
                        if addr is not None and addr.version == 4:
                            v4.add(addr.text)
                        elif addr is None and checkip.iptype(val) == AddressKind.Loopback:
                            lo.add(val)
                    case "brd":
                        addr = checkip.validate(val)
                        if addr is not None and addr.version == 4:
                            brd.add(addr.text)
                    case "inet6":
                        addr = checkip.validate(val)
                        if addr is not None and addr.version == 6:
                            v6.add(addr.text)
                        elif addr is None and checkip.iptype(val) == AddressKind.Loopback:
                            lo.add(val)

        return cls(interfaces=frozenset(ifaces),
                   ipv4=frozenset(v4),
                   ipv6=frozenset(v6),
                   loopback=frozenset(lo),
                   broadcast=frozenset(brd))

    @classmethod
    def probe(cls, cfg: Config, log: Optional[logging.Logger] = None) -> 'NetSnapshot':
        """Run the ip binary named in the configuration and parse its output.

        If the binary is missing or fails, the error is logged and an empty
        snapshot is returned.
        """
        if log is None:
            log = common.get_logger("netinfo")
        binary: Final[str] = cfg.string("IP")
        if binary == "" or not os.path.exists(binary):
            log.error("Cannot probe network interfaces, %s does not exist",
                      binary)
            return cls()

        try:
            proc = subprocess.run([binary, "-oneline", "addr"],
                                  capture_output=True,
                                  text=True,
                                  check=True,
                                  timeout=cfg.integer("DNS_TIMEOUT", 10),
                                  env={**os.environ, "LC_ALL": "POSIX"})
        except (OSError, subprocess.SubprocessError) as err:
            log.error("%s running %s: %s",
                      err.__class__.__name__,
                      binary,
                      err)
            return cls()

        snap = cls.parse(proc.stdout)
        log.debug("Found %d interfaces, %d IPv4 and %d IPv6 addresses",
                  len(snap.interfaces),
                  len(snap.ipv4),
                  len(snap.ipv6))
        return snap


# Local Variables: #
# python-indent: 4 #
# End: #
