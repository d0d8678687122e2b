#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-04 18:02:55 krylon>
#
# /data/code/python/pywarden/checkip.py
# created on 12. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.checkip

(c) 2026 Benjamin Walkenhorst

Validation and classification of IP addresses. Everything else in the
application passes addresses through here first, so this module does no I/O
and keeps no state beyond a few compiled patterns.
"""

import re
from ipaddress import (IPv4Address, IPv4Network, IPv6Address, IPv6Network,
                       ip_address, ip_network)
from typing import Final, Optional, Union

from pywarden.model import Address, AddressKind

_octet: Final[str] = "(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)"
_v4: Final[str] = "(?:25[0-5]|2[0-4]\\d|1\\d\\d|[1-9]?\\d)(?:\\.(?:25[0-5]|2[0-4]\\d|1\\d\\d|[1-9]?\\d)){3}"
_h: Final[str] = "[0-9A-Fa-f]{1,4}"

ipv4reg: Final[str] = f"(?:{_octet}\\.){{3}}{_octet}"
ipv6reg: Final[str] = (
    "(?:"
    f"(?:(?:{_h}:){{7}}(?:{_h}|:))"
    f"|(?:(?:{_h}:){{6}}(?::{_h}|{_v4}|:))"
    f"|(?:(?:{_h}:){{5}}(?:(?:(?::{_h}){{1,2}})|:{_v4}|:))"
    f"|(?:(?:{_h}:){{4}}(?:(?:(?::{_h}){{1,3}})|(?:(?::{_h})?:{_v4})|:))"
    f"|(?:(?:{_h}:){{3}}(?:(?:(?::{_h}){{1,4}})|(?:(?::{_h}){{0,2}}:{_v4})|:))"
    f"|(?:(?:{_h}:){{2}}(?:(?:(?::{_h}){{1,5}})|(?:(?::{_h}){{0,3}}:{_v4})|:))"
    f"|(?:(?:{_h}:){{1}}(?:(?:(?::{_h}){{1,6}})|(?:(?::{_h}){{0,4}}:{_v4})|:))"
    f"|(?::(?:(?:(?::{_h}){{1,7}})|(?:(?::{_h}){{0,5}}:{_v4})|:))"
    ")(?:%.+)?"
)

_v4pat: Final[re.Pattern] = re.compile(ipv4reg)
_v6pat: Final[re.Pattern] = re.compile(ipv6reg)
_loopback6: Final[IPv6Address] = IPv6Address("::1")

# Ranges that are not publicly routable. Anything not listed here is Public.
special_networks: Final[list[tuple[str, AddressKind]]] = [
    ("127.0.0.0/8", AddressKind.Loopback),
    ("::1/128", AddressKind.Loopback),
    ("0.0.0.0/8", AddressKind.Private),
    ("10.0.0.0/8", AddressKind.Private),
    ("100.64.0.0/10", AddressKind.Private),
    ("169.254.0.0/16", AddressKind.Private),
    ("172.16.0.0/12", AddressKind.Private),
    ("192.0.0.0/24", AddressKind.Private),
    ("192.0.2.0/24", AddressKind.Private),
    ("192.88.99.0/24", AddressKind.Private),
    ("192.168.0.0/16", AddressKind.Private),
    ("198.18.0.0/15", AddressKind.Private),
    ("198.51.100.0/24", AddressKind.Private),
    ("203.0.113.0/24", AddressKind.Private),
    ("224.0.0.0/4", AddressKind.Private),
    ("240.0.0.0/4", AddressKind.Private),
    ("::/128", AddressKind.Private),
    ("::ffff:0:0/96", AddressKind.Private),
    ("100::/64", AddressKind.Private),
    ("2001:db8::/32", AddressKind.Private),
    ("fc00::/7", AddressKind.Private),
    ("fe80::/10", AddressKind.Private),
    ("ff00::/8", AddressKind.Private),
]

_networks: Final[list[tuple[Union[IPv4Network, IPv6Network], AddressKind]]] = \
    [(ip_network(net), kind) for net, kind in special_networks]


def strip_mapped(text: str) -> str:
    """Remove the ::ffff: prefix of an IPv4-mapped IPv6 address."""
    if text[:7].lower() == "::ffff:":
        return text[7:]
    return text


def classify(addr: Union[IPv4Address, IPv6Address]) -> AddressKind:
    """Return the AddressKind of <addr>."""
    for net, kind in _networks:
        if addr.version == net.version and addr in net:
            return kind
    return AddressKind.Public


def validate(text: str, public: bool = False) -> Optional[Address]:
    """Validate <text> as an IP address with an optional /prefix.

    The returned Address carries the canonical form as its text and <text>
    itself as its literal: IPv6 addresses are shortened, leading zeros in
    IPv4 octets are dropped ("010.1.2.3" becomes "10.1.2.3"). The loopback
    addresses 127.0.0.1 and ::1 are never valid. If <public> is True, only
    publicly routable addresses are accepted.
    Returns None if the address is not acceptable.
    """
    if not text:
        return None

    parts: Final[list[str]] = text.split("/")
    if len(parts) > 2:
        return None
    host: str = parts[0]
    cidr: Optional[str] = parts[1] if len(parts) > 1 else None
    prefix: Optional[int] = None

    if cidr is not None and cidr != "":
        if not cidr.isdigit():
            return None
        prefix = int(cidr)

    addr: Union[IPv4Address, IPv6Address]

    if _v4pat.fullmatch(host):
        if prefix is not None and not 1 <= prefix <= 32:
            return None
        canon = ".".join(str(int(x)) for x in host.split("."))
        if canon == "127.0.0.1":
            return None
        addr = IPv4Address(canon)
        version = 4
    elif _v6pat.fullmatch(host):
        if prefix is not None and not 1 <= prefix <= 128:
            return None
        try:
            addr = IPv6Address(host.split("%")[0])
        except ValueError:
            return None
        if addr == _loopback6:
            return None
        canon = addr.compressed
        version = 6
    else:
        return None

    kind: Final[AddressKind] = classify(addr)
    if public and kind != AddressKind.Public:
        return None

    if prefix is not None:
        canon = f"{canon}/{prefix}"

    return Address(text=canon, version=version, kind=kind, prefix=prefix, literal=text)


def is_valid(text: str) -> bool:
    """Return True if <text> is a valid address."""
    return validate(text) is not None


def is_public(text: str) -> bool:
    """Return True if <text> is a valid, publicly routable address."""
    return validate(text, public=True) is not None


def iptype(text: str) -> Optional[AddressKind]:
    """Return the AddressKind of <text>, or None if it is not an IP address."""
    try:
        return classify(ip_address(strip_mapped(text.split("/")[0])))
    except ValueError:
        return None


# Local Variables: #
# python-indent: 4 #
# End: #
