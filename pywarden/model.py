#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-04 17:20:11 krylon>
#
# /data/code/python/pywarden/model.py
# created on 12. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.model

(c) 2026 Benjamin Walkenhorst
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from ipaddress import IPv4Address, IPv6Address, ip_address
from typing import Final, Optional, Union

TIMEOUT: Final[str] = "timeout"


class AddressKind(Enum):
    """AddressKind classifies an address by where it may be routed."""

    Loopback = auto()
    Private = auto()
    Public = auto()


@dataclass(frozen=True, slots=True, kw_only=True)
class Address:
    """Address is a validated IPv4 or IPv6 address, optionally with a prefix length.

    <text> is the canonical form. <literal> is the text the address was
    validated from, which differs for IPv6 and for IPv4 with leading zeros.
    It plays no part in comparisons.
    """

    text: str
    version: int
    kind: AddressKind
    prefix: Optional[int] = None
    literal: str = field(default="", compare=False)

    @property
    def host(self) -> str:
        """Return the address without its prefix length."""
        return self.text.split("/")[0]

    @property
    def ip(self) -> Union[IPv4Address, IPv6Address]:
        """Return the address as an ipaddress object."""
        return ip_address(self.host)

    @property
    def public(self) -> bool:
        """Return True if the address is publicly routable."""
        return self.kind == AddressKind.Public

    def __str__(self) -> str:
        return self.text


class App(Enum):
    """App identifies the service a log line originates from."""

    sshd = "sshd"
    ftpd = "ftpd"
    pop3d = "pop3d"
    imapd = "imapd"
    htpasswd = "htpasswd"
    mod_security = "mod_security"
    cxs = "cxs"
    bind = "bind"
    suhosin = "suhosin"
    cpanel = "cpanel"
    smtpauth = "smtpauth"
    eximsyntax = "eximsyntax"
    mod_qos = "mod_qos"
    symlink = "symlink"
    custom = "custom"


@dataclass(frozen=True, slots=True, kw_only=True)
class SecurityEvent:
    """SecurityEvent is a failed login or similar incident extracted from a log line."""

    address: Address
    app: App
    reason: str
    account: Optional[str] = None
    domain: Optional[str] = None
    rule: str = ""
    trigger: Optional[str] = None


@dataclass(frozen=True, slots=True, kw_only=True)
class LoginEvent:
    """LoginEvent is a successful mail login."""

    app: App
    account: str
    address: Address


@dataclass(frozen=True, slots=True, kw_only=True)
class SSHLogin:
    """SSHLogin is a successful SSH login."""

    account: str
    address: Address
    method: str


@dataclass(frozen=True, slots=True, kw_only=True)
class PrivilegeEvent:
    """PrivilegeEvent is a su or sudo session, successful or not."""

    to_user: str
    from_user: str
    outcome: str


@dataclass(frozen=True, slots=True, kw_only=True)
class PortScanHit:
    """PortScanHit is a packet the firewall dropped, as reported by the kernel."""

    address: Address
    port: str


@dataclass(frozen=True, slots=True, kw_only=True)
class RelayEvent:
    """RelayEvent is a message accepted by the MTA, labelled by how it was relayed."""

    source: str
    kind: str


class RBLStatus(Enum):
    """RBLStatus summarizes the outcome of RBL lookups."""

    NotListed = auto()
    Timeout = auto()
    Listed = auto()


@dataclass(kw_only=True, slots=True)
class RBLResult:
    """RBLResult is the outcome of looking up one address in one RBL zone."""

    zone: str
    hit: str = ""
    explanations: list[str] = field(default_factory=list)
    url: str = ""

    @property
    def status(self) -> RBLStatus:
        """Return the status of the lookup."""
        match self.hit:
            case "":
                return RBLStatus.NotListed
            case x if x == TIMEOUT:
                return RBLStatus.Timeout
            case _:
                return RBLStatus.Listed


@dataclass(kw_only=True, slots=True)
class GeoRecord:
    """GeoRecord is what the Geo and ASN databases know about an address."""

    country_code: str = ""
    country_name: str = ""
    region: str = ""
    city: str = ""
    asn: str = ""

    @property
    def empty(self) -> bool:
        """Return True if no field is set."""
        return not (self.country_code or self.country_name or self.region
                    or self.city or self.asn)


@dataclass(kw_only=True, slots=True)
class ReputationRecord:
    """ReputationRecord bundles everything we could find out about an address."""

    address: Address
    geo: GeoRecord = field(default_factory=GeoRecord)
    hostname: str = ""
    rbl: list[RBLResult] = field(default_factory=list)

    @property
    def country_code(self) -> str:
        """Return the ISO country code."""
        return self.geo.country_code

    @property
    def country_name(self) -> str:
        """Return the country name."""
        return self.geo.country_name

    @property
    def region(self) -> str:
        """Return the region."""
        return self.geo.region

    @property
    def city(self) -> str:
        """Return the city."""
        return self.geo.city

    @property
    def asn(self) -> str:
        """Return the AS number and organisation."""
        return self.geo.asn

    @property
    def rbl_hit(self) -> RBLStatus:
        """Return Listed if any zone lists the address, Timeout if any zone timed out."""
        status = RBLStatus.NotListed
        for res in self.rbl:
            match res.status:
                case RBLStatus.Listed:
                    return RBLStatus.Listed
                case RBLStatus.Timeout:
                    status = RBLStatus.Timeout
        return status

    @property
    def rbl_explanations(self) -> list[str]:
        """Return the explanations of all listing zones, in zone order."""
        return [txt for res in self.rbl if res.status == RBLStatus.Listed
                for txt in res.explanations]


class TCPState(Enum):
    """TCPState maps the kernel's numeric connection states."""

    ESTABLISHED = 0x01
    SYN_SENT = 0x02
    SYN_RECV = 0x03
    FIN_WAIT1 = 0x04
    FIN_WAIT2 = 0x05
    TIME_WAIT = 0x06
    CLOSE = 0x07
    CLOSE_WAIT = 0x08
    LAST_ACK = 0x09
    LISTEN = 0x0A
    CLOSING = 0x0B
    NEW_SYN_RECV = 0x0C
    UNKNOWN = 0xFF


@dataclass(frozen=True, slots=True, kw_only=True)
class ConnectionRecord:
    """ConnectionRecord is one row of a kernel connection table."""

    inode: int
    protocol: str
    local_address: Union[IPv4Address, IPv6Address]
    local_port: int
    remote_address: Union[IPv4Address, IPv6Address]
    remote_port: int
    state: TCPState


@dataclass(frozen=True, slots=True, kw_only=True)
class ProcessRecord:
    """ProcessRecord is a running process and the sockets it holds."""

    pid: int
    exe: str
    socket_inodes: frozenset[int]


# Local Variables: #
# python-indent: 4 #
# End: #
