#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-13 18:21:40 krylon>
#
# /data/code/python/pywarden/procnet.py
# created on 21. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.procnet

(c) 2026 Benjamin Walkenhorst

Read the kernel's connection tables and the open file descriptors of running
processes from the proc filesystem. Processes may disappear or deny us access
while we look at them, those are silently skipped.
"""

import os
import pwd
import re
import sys
from dataclasses import dataclass
from ipaddress import IPv4Address, IPv6Address
from typing import Final, Iterable, Iterator, Union

from pywarden.model import ConnectionRecord, ProcessRecord, TCPState

IPAddr = Union[IPv4Address, IPv6Address]

_socket_pat: Final[re.Pattern] = re.compile(r"^socket:\[?(\d+)\]?$")

skipped_errors: Final[tuple[type[Exception], ...]] = (
    FileNotFoundError,
    PermissionError,
    ProcessLookupError,
)


def decode_address(text: str) -> IPAddr:
    """Decode an address from a /proc/net table.

    The kernel prints the address as 32-bit words in host byte order, each
    as 8 hex digits. Raise ValueError if <text> is not such an address.
    """
    raw: Final[bytes] = bytes.fromhex(text)
    if len(raw) not in (4, 16):
        raise ValueError(f"Invalid address {text!r}")
    words: Final[bytes] = b"".join(
        int.from_bytes(raw[i:i+4], sys.byteorder).to_bytes(4, "big")
        for i in range(0, len(raw), 4))
    if len(words) == 4:
        return IPv4Address(words)
    return IPv6Address(words)


def encode_address(addr: IPAddr) -> str:
    """Encode <addr> the way the kernel prints it in /proc/net tables."""
    raw: Final[bytes] = addr.packed
    return b"".join(
        int.from_bytes(raw[i:i+4], "big").to_bytes(4, sys.byteorder)
        for i in range(0, len(raw), 4)).hex().upper()


def decode_endpoint(text: str) -> tuple[IPAddr, int]:
    """Decode an address:port pair from a /proc/net table."""
    addr, _, port = text.partition(":")
    return decode_address(addr), int(port, 16)


def read_table(path: str, protocol: str) -> list[ConnectionRecord]:
    """Read one /proc/net table.

    Header lines and lines that cannot be decoded are skipped. A table that
    does not exist, e.g. tcp6 on a system without IPv6, is empty.
    """
    records: list[ConnectionRecord] = []
    try:
        with open(path, "r", encoding="ascii", errors="replace") as fh:
            lines: Final[list[str]] = fh.readlines()
    except skipped_errors:
        return records

    for line in lines:
        rec = line.split()
        if len(rec) < 10 or not rec[9].isdigit():
            continue
        try:
            local_addr, local_port = decode_endpoint(rec[1])
            remote_addr, remote_port = decode_endpoint(rec[2])
            code = int(rec[3], 16)
        except ValueError:
            continue
        try:
            state = TCPState(code)
        except ValueError:
            state = TCPState.UNKNOWN

        records.append(ConnectionRecord(inode=int(rec[9]),
                                        protocol=protocol,
                                        local_address=local_addr,
                                        local_port=local_port,
                                        remote_address=remote_addr,
                                        remote_port=remote_port,
                                        state=state))
    return records


def connections(proc_root: str = "/proc",
                protocols: Iterable[str] = ("tcp", "tcp6")) -> list[ConnectionRecord]:
    """Read the connection tables for <protocols>."""
    records: list[ConnectionRecord] = []
    for proto in protocols:
        records.extend(read_table(os.path.join(proc_root, "net", proto),
                                  proto.removesuffix("6")))
    return records


def _socket_inodes(fd_dir: str) -> frozenset[int]:
    inodes: set[int] = set()
    for fd in os.listdir(fd_dir):
        if fd.startswith("."):
            continue
        try:
            link = os.readlink(os.path.join(fd_dir, fd))
        except skipped_errors:
            continue
        m = _socket_pat.match(link)
        if m is not None:
            inodes.add(int(m[1]))
    return frozenset(inodes)


def processes(proc_root: str = "/proc") -> Iterator[ProcessRecord]:
    """Yield the running processes and the sockets they hold."""
    try:
        entries: Final[list[str]] = os.listdir(proc_root)
    except skipped_errors:
        return

    for name in entries:
        if not name.isdigit():
            continue
        pdir = os.path.join(proc_root, name)
        try:
            exe = os.readlink(os.path.join(pdir, "exe"))
        except skipped_errors:
            exe = ""
        try:
            inodes = _socket_inodes(os.path.join(pdir, "fd"))
        except (*skipped_errors, NotADirectoryError):
            continue
        yield ProcessRecord(pid=int(name), exe=exe, socket_inodes=inodes)


@dataclass(frozen=True, slots=True, kw_only=True)
class ListeningPort:
    """ListeningPort is a port a local process accepts connections or datagrams on."""

    protocol: str
    port: int
    pid: int
    exe: str
    cmdline: str
    user: str
    connections: int


def _cmdline(pdir: str) -> str:
    try:
        with open(os.path.join(pdir, "cmdline"), "rb") as fh:
            raw = fh.read()
    except skipped_errors:
        return ""
    return raw.rstrip(b"\0").replace(b"\0", b" ").decode("utf-8", errors="replace").strip()


def _user(pdir: str) -> str:
    try:
        with open(os.path.join(pdir, "status"), "r", encoding="utf-8", errors="replace") as fh:
            for line in fh:
                if line.startswith("Uid:"):
                    uid = int(line.split()[-1])
                    try:
                        return pwd.getpwuid(uid).pw_name
                    except KeyError:
                        return str(uid)
    except skipped_errors:
        pass
    return ""


def listening(proc_root: str = "/proc") -> list[ListeningPort]:
    """Return the ports local processes listen on.

    UDP sockets in state CLOSE count as listening. Sockets bound to loopback
    addresses are left out.
    """
    bound: dict[int, tuple[str, int]] = {}
    established: dict[tuple[str, int], int] = {}

    for rec in connections(proc_root, ("tcp", "udp", "tcp6", "udp6")):
        state = rec.state
        if rec.protocol == "udp" and state == TCPState.CLOSE:
            state = TCPState.LISTEN
        if state == TCPState.ESTABLISHED:
            key = (rec.protocol, rec.local_port)
            established[key] = established.get(key, 0) + 1
        if rec.local_address.is_loopback or str(rec.local_address) == "0.0.0.1":
            continue
        if state == TCPState.LISTEN:
            bound[rec.inode] = (rec.protocol, rec.local_port)

    ports: list[ListeningPort] = []
    for proc in processes(proc_root):
        if proc.exe == "":
            continue
        pdir = os.path.join(proc_root, str(proc.pid))
        for inode in proc.socket_inodes:
            if inode not in bound:
                continue
            proto, port = bound[inode]
            ports.append(ListeningPort(protocol=proto,
                                       port=port,
                                       pid=proc.pid,
                                       exe=proc.exe,
                                       cmdline=_cmdline(pdir),
                                       user=_user(pdir),
                                       connections=established.get((proto, port), 0)))
    ports.sort(key=lambda p: (p.protocol, p.port, p.pid))
    return ports


# Local Variables: #
# python-indent: 4 #
# End: #
