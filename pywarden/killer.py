#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-13 19:40:08 krylon>
#
# /data/code/python/pywarden/killer.py
# created on 21. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.killer

(c) 2026 Benjamin Walkenhorst

Blocking an address in the firewall does not affect connections that are
already established. The Killer finds the daemon processes serving such
connections and terminates them.
"""

import logging
import os
import signal
from dataclasses import dataclass, field
from ipaddress import IPv4Address, IPv6Address
from typing import Callable, Collection, Final, Union

from pywarden import checkip, common
from pywarden.model import Address, ConnectionRecord
from pywarden.procnet import connections, processes

IPAddr = Union[IPv4Address, IPv6Address]


def _remote_matches(rec: ConnectionRecord, target: IPAddr) -> bool:
    remote = rec.remote_address
    if isinstance(remote, IPv6Address) and remote.ipv4_mapped is not None:
        remote = remote.ipv4_mapped
    return remote == target


@dataclass(kw_only=True, slots=True)
class Killer:
    """Killer terminates the sessions of a blocked address."""

    proc_root: str = "/proc"
    daemon: str = "sshd"
    kill: Callable[[int, int], None] = os.kill
    audit: logging.Logger = field(default_factory=common.get_audit_logger)
    log: logging.Logger = field(default_factory=lambda: common.get_logger("killer"))

    def find_inodes(self, target: IPAddr, ports: Collection[int]) -> set[int]:
        """Return the inodes of the sockets connecting <target> to one of our <ports>."""
        inodes: set[int] = set()
        for rec in connections(self.proc_root, ("tcp", "tcp6")):
            if str(rec.local_address) == "0.0.0.1":
                continue
            if rec.local_port in ports and _remote_matches(rec, target):
                inodes.add(rec.inode)
        return inodes

    def terminate_sessions(self, address: Union[Address, str], ports: Collection[int]) -> None:
        """Kill the daemon processes holding connections from <address> to <ports>.

        Every process killed is reported to the audit log.
        """
        if not ports:
            return
        if isinstance(address, str):
            addr = checkip.validate(checkip.strip_mapped(address))
            if addr is None:
                self.log.error("Cannot terminate sessions of invalid address %r", address)
                return
            address = addr
        target: Final[IPAddr] = address.ip

        inodes: Final[set[int]] = self.find_inodes(target, ports)
        if not inodes:
            self.log.debug("No connections from %s to ports %s",
                           address,
                           sorted(ports))
            return

        for proc in processes(self.proc_root):
            if proc.socket_inodes.isdisjoint(inodes) or self.daemon not in proc.exe:
                continue
            try:
                self.kill(proc.pid, signal.SIGKILL)
            except (ProcessLookupError, PermissionError) as err:
                self.log.error("Cannot kill process %d: %s",
                               proc.pid,
                               err)
                continue
            self.audit.warning("*PT_SSHDKILL*: Process PID:[%d] killed for blocked IP:[%s]",
                               proc.pid,
                               address.host)


# Local Variables: #
# python-indent: 4 #
# End: #
