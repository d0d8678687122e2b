#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-08 17:52:19 krylon>
#
# /data/code/python/pywarden/classifier.py
# created on 14. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.classifier

(c) 2026 Benjamin Walkenhorst

The Classifier turns raw log lines into SecurityEvents. Besides the main
table of login failures, it offers a number of narrower extractors for
successful logins, privilege changes, firewall log lines and the like.

None of the methods raise on bad input: a line that does not match, or that
matches but carries an unusable address, yields None.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Mapping, Optional, Sequence, TypeVar, Union

from pywarden import checkip, common, rules
from pywarden.config import Config
from pywarden.model import (Address, App, LoginEvent, PortScanHit,
                            PrivilegeEvent, RelayEvent, SecurityEvent,
                            SSHLogin)
from pywarden.netinfo import NetSnapshot
from pywarden.rules import SYS, LineRule, Rule, RuleLoader

T = TypeVar("T")

OK: Final[str] = "Successful login"
FAIL: Final[str] = "Failed login"

_errport_pat: Final[re.Pattern] = re.compile(r"^(.*):\d+$")
_quoted_pat: Final[re.Pattern] = re.compile(r'".*"')
_kernel_fw: Final[re.Pattern] = re.compile(SYS + r"\S+ kernel:\s(?:\[[^\]]+\]\s)?Firewall:")
_kernel_fw_any: Final[re.Pattern] = \
    re.compile(SYS + r"\S+ kernel(?:\[\d+\])?:\s(?:\[[^\]]+\]\s)?Firewall:")
_fw_invalid: Final[re.Pattern] = re.compile(SYS + r"\S+ kernel:\s(?:\[[^\]]+\]\s)?Firewall: \*INVALID\*")
_fw_tcp_in: Final[re.Pattern] = re.compile(r"kernel:\s(?:\[[^\]]+\]\s)?Firewall: \*TCP_IN Blocked\*")
_fw_udp_in: Final[re.Pattern] = re.compile(r"kernel:\s(?:\[[^\]]+\]\s)?Firewall: \*UDP_IN Blocked\*")
_fw_packet: Final[re.Pattern] = re.compile(r"IN=\S+.*SRC=(\S+).*DST=(\S+).*PROTO=(\w+).*DPT=(\d+)")
_fw_icmp: Final[re.Pattern] = re.compile(r"IN=\S+.*SRC=(\S+).*PROTO=(ICMP)\b")
_fw_icmp6: Final[re.Pattern] = re.compile(r"IN=\S+.*SRC=(\S+).*PROTO=(ICMPv6)")
_fw_uid: Final[re.Pattern] = re.compile(r"OUT=\S+.*DPT=(\S+).*UID=(\d+)")
_knock: Final[re.Pattern] = re.compile(SYS + r"\S+ kernel(?:\[\d+\])?:\s(?:\[[^\]]+\]\s)?Knock: \*\d+_IN\*")
_knock_packet: Final[re.Pattern] = re.compile(r"SRC=(\S+).*DPT=(\d+)")
_stats: Final[re.Pattern] = re.compile(SYS + r"\S+ kernel:\s(?:\[[^\]]+\]\s)?(?:Firewall|Knock):")
_syslog_check: Final[re.Pattern] = re.compile(SYS + r"\S+ (?:lfd|pywarden)\[\d+\]: SYSLOG check \[(\S+)\]\s*$")
_exim_in: Final[re.Pattern] = re.compile(r"^\S+\s+\S+\s+(?:\[\d+\]\s)?\S+ <=")
_exim_local: Final[re.Pattern] = re.compile(r" U=(\S+) P=local ")
_exim_host: Final[re.Pattern] = re.compile(r" H=[^=]*\[(\S+)\]")
_exim_auth: Final[re.Pattern] = re.compile(
    r" A=(?:courier_plain|courier_login|dovecot_plain|dovecot_login|fixed_login|fixed_plain|login|plain):(\S*)")
_exim_authproto: Final[re.Pattern] = re.compile(r" P=(?:esmtpa|esmtpsa) ")
_exim_relay: Final[re.Pattern] = re.compile(r" P=(?:smtp|esmtp|esmtps) ")
_postfix_sasl: Final[re.Pattern] = re.compile(
    SYS + r"\S+ postfix/(?:submission/)?smtpd(?:\[\d+\])?: \w+: client=\S+\[(\S+)\], "
    r"sasl_method=(?:(?i:LOGIN|PLAIN|(?:CRAM|DIGEST)-MD5)), sasl_username=(\S+)$")
_apache_err: Final[str] = r"^\[\S+\s+\S+\s+\S+\s+\S+\s+\S+\] \[(?:\S*:)?error\] " + \
    r"(?:\[pid \d+(?::tid \d+)?\] )?\[(?:client|remote) (\S+)\] (?:\w+: )?"
_apache_404: Final[re.Pattern] = re.compile(
    r"^\[\S+\s+\S+\s+\S+\s+\S+\s+\S+\] \[(?:\S*:)?(?:error|info)\] (?:\[pid \d+(?::tid \d+)?\] )?"
    r"\[(?:client|remote) (\S+)\] (?:\w+: )?File does not exist:")
_apache_403: Final[re.Pattern] = re.compile(_apache_err + r"client denied by server configuration:")
_apache_401: Final[re.Pattern] = re.compile(
    _apache_err + r'(?:user  not found|user \w+ not found|user \w+: authentication failure for "/\w+/"):')

_loopback: Final[frozenset[str]] = frozenset({"127.0.0.1", "::1"})


def _address(text: str) -> Optional[Address]:
    return checkip.validate(checkip.strip_mapped(text))


def _login(app: App) -> Any:
    def build(m: re.Match) -> Optional[LoginEvent]:
        addr = _address(m["ip"])
        if addr is None:
            return None
        return LoginEvent(app=app, account=m["acc"], address=addr)
    return build


def _priv(outcome: str) -> Any:
    def build(m: re.Match) -> Optional[PrivilegeEvent]:
        return PrivilegeEvent(to_user=m["to"], from_user=m["by"], outcome=outcome)
    return build


def _sudo_session(m: re.Match) -> Optional[PrivilegeEvent]:
    items: Final[list[str]] = re.split(r"\s+;\s+", m["rest"])
    if items[0].startswith("TTY"):
        if len(items) > 2:
            um = re.match(r"^USER=(\S+)$", items[2])
            if um is not None:
                return PrivilegeEvent(to_user=um[1], from_user=m["by"], outcome=OK)
    elif items[0].startswith("user NOT in sudoers"):
        if len(items) > 3:
            um = re.match(r"^USER=(\w+)$", items[3])
            if um is not None:
                return PrivilegeEvent(to_user=um[1], from_user=m["by"], outcome=FAIL)
    return None


def _c(pat: str) -> re.Pattern:
    return re.compile(pat)


_LOGIN_TAIL: Final[str] = r": LOGIN, user=(?P<acc>\S*), ip=\[(?P<ip>\S+)\], port=\S+"
_DOVECOT_TAIL: Final[str] = r": Login: user=<(?P<acc>\S*)>, method=\S+, rip=(?P<ip>\S+), lip="
_SU_PREFIX: Final[str] = SYS + r"(?:\S+ )?su(?:\[\d+\])?: pam_unix\(su(?:-l)?:"
_PAM_FAIL: Final[str] = r"authentication failure; logname=\S*\s+\S+\s+\S+\s+\S+\s+ruser=(?P<by>\S+)\s+\S+\s+user=(?P<to>\S+)\s*$"

login_rules: Final[tuple[LineRule[LoginEvent], ...]] = (
    # courier-imap
    LineRule(name="courier_pop3", flag="LT_POP3D",
             pattern=_c(SYS + r"\S+ pop3d(?:-ssl)?" + _LOGIN_TAIL), build=_login(App.pop3d)),
    LineRule(name="courier_imap", flag="LT_IMAPD",
             pattern=_c(SYS + r"\S+ imapd(?:-ssl)?" + _LOGIN_TAIL), build=_login(App.imapd)),
    # dovecot
    LineRule(name="dovecot_pop3", flag="LT_POP3D",
             pattern=_c(SYS + r"\S+ dovecot(?:\[\d+\])?: pop3-login" + _DOVECOT_TAIL),
             build=_login(App.pop3d)),
    LineRule(name="dovecot_imap", flag="LT_IMAPD",
             pattern=_c(SYS + r"\S+ dovecot(?:\[\d+\])?: imap-login" + _DOVECOT_TAIL),
             build=_login(App.imapd)),
)

su_rules: Final[tuple[LineRule[PrivilegeEvent], ...]] = (
    # RedHat, Debian, Ubuntu
    LineRule(name="su_session", flag="LF_SU_EMAIL_ALERT",
             pattern=_c(_SU_PREFIX + r"session\): session opened for user\s+(?P<to>\S+)\s+by\s+(?P<by>\S+)\s*$"),
             build=_priv(OK)),
    LineRule(name="su_failure", flag="LF_SU_EMAIL_ALERT",
             pattern=_c(_SU_PREFIX + r"auth\): " + _PAM_FAIL),
             build=_priv(FAIL)),
    # old pam_unix
    LineRule(name="su_session_old", flag="LF_SU_EMAIL_ALERT",
             pattern=_c(SYS + r"(?:\S+ )?su\(pam_unix\)\[\d+\]: session opened for user\s+(?P<to>\S+)"
                        r"\s+by\s+(?P<by>\S+)\s*$"),
             build=_priv(OK)),
    LineRule(name="su_failure_old", flag="LF_SU_EMAIL_ALERT",
             pattern=_c(SYS + r"(?:\S+ )?su\(pam_unix\)\[\d+\]: " + _PAM_FAIL),
             build=_priv(FAIL)),
)

sudo_rules: Final[tuple[LineRule[PrivilegeEvent], ...]] = (
    LineRule(name="sudo_failure", flag="LF_SUDO_EMAIL_ALERT",
             pattern=_c(SYS + r"(?:\S+ )?sudo(?:\[\d+\])?: pam_unix\(sudo(?:-l)?:auth\): " + _PAM_FAIL),
             build=_priv(FAIL)),
    LineRule(name="sudo_failure_old", flag="LF_SUDO_EMAIL_ALERT",
             pattern=_c(SYS + r"(?:\S+ )?sudo\(pam_unix\)\[\d+\]: " + _PAM_FAIL),
             build=_priv(FAIL)),
    LineRule(name="sudo_command", flag="LF_SUDO_EMAIL_ALERT",
             pattern=_c(SYS + r"(?:\S+ )?sudo(?:\[\d+\])?:\s+(?P<by>\S+)\s+:\s+(?P<rest>.*)$"),
             build=_sudo_session),
)

dist_ftp_rules: Final[tuple[LineRule[LoginEvent], ...]] = (
    LineRule(name="pureftpd_login", flag="",
             pattern=_c(SYS + r"\S+ pure-ftpd(?:\[\d+\])?: \(\?@(?P<ip>\S+)\) \[INFO\] "
                        r"(?P<acc>\S*) is now logged in$"),
             build=_login(App.ftpd)),
    LineRule(name="proftpd_login", flag="",
             pattern=_c(SYS + r"\S+ proftpd\[\d+\]: \S+ \([^\[]+\[(?P<ip>\S+)\]\) - "
                        r"USER (?P<acc>\S*): Login successful\.\s*$"),
             build=_login(App.ftpd)),
)

_ssh_accepted: Final[re.Pattern] = re.compile(
    SYS + r"(?:\S+ )?sshd\[\d+\]: Accepted (\S+) for (\S+) from (\S+) port \S+")
_console_root: Final[re.Pattern] = re.compile(SYS + r"\S+ login(?:\[\d+\])?: ROOT LOGIN")
_cpanel_ok: Final[re.Pattern] = re.compile(r'^(\S+)\s+-\s+(\w+)\s+\[[^\]]+\]\s"[^"]+"\s200\s')


@dataclass(kw_only=True, slots=True)
class Classifier:
    """Classifier matches log lines against the rule tables.

    The custom rules, if any, are tried before the built-in table. If one of
    them yields an event, the built-in table is skipped for that line.
    """

    cfg: Config
    custom: Sequence[Rule] = ()
    builtin: Sequence[Rule] = rules.builtin_rules
    log: logging.Logger = field(default_factory=lambda: common.get_logger("classifier"))

    def classify(self,
                 line: str,
                 source: str,
                 log_sets: Mapping[str, Any]) -> Optional[SecurityEvent]:
        """Classify a line from the log file <source>.

        <log_sets> maps log set names like SSHD_LOG to the collection of files
        that belong to them.
        """
        line = line.replace("\r", "").replace("\n", "")

        if self.custom:
            ev = self._first(self.custom, line, source, log_sets)
            if ev is not None:
                return ev

        return self._first(self.builtin, line, source, log_sets)

    def _first(self,
               table: Sequence[Rule],
               line: str,
               source: str,
               log_sets: Mapping[str, Any]) -> Optional[SecurityEvent]:
        errport: Final[int] = self.cfg.integer("LF_APACHE_ERRPORT")
        for rule in table:
            if not (rule.enabled(self.cfg) and rule.applies(source, log_sets)):
                continue
            m = rule.match(line)
            if m is None:
                continue

            payload = rule.payload(m, line, errport)
            addr = _address(payload.ip or "")
            if addr is None:
                self.log.debug("Rule %s matched, but %r is not a valid address",
                               rule.name,
                               payload.ip)
                return None
            return SecurityEvent(address=addr,
                                 app=rule.app,
                                 reason=payload.reason or rule.reason,
                                 account=payload.account,
                                 domain=payload.domain,
                                 rule=rule.name,
                                 trigger=rule.trigger)
        return None

    def _first_line(self, table: Sequence[LineRule[T]], line: str) -> Optional[T]:
        for rule in table:
            if not rule.enabled(self.cfg):
                continue
            m = rule.pattern.search(line)
            if m is not None:
                return rule.build(m)
        return None

    def login_event(self, line: str) -> Optional[LoginEvent]:
        """Recognize a successful POP3 or IMAP login."""
        return self._first_line(login_rules, line)

    def su_event(self, line: str) -> Optional[PrivilegeEvent]:
        """Recognize a su session or a failed su attempt."""
        return self._first_line(su_rules, line)

    def sudo_event(self, line: str) -> Optional[PrivilegeEvent]:
        """Recognize a sudo command or a failed sudo attempt."""
        return self._first_line(sudo_rules, line)

    def privilege_event(self, line: str) -> Optional[PrivilegeEvent]:
        """Try su first, then sudo."""
        ev = self.su_event(line)
        if ev is None:
            ev = self.sudo_event(line)
        return ev

    def ssh_login(self, line: str) -> Optional[SSHLogin]:
        """Recognize a successful SSH login."""
        if not self.cfg.flag("LF_SSH_EMAIL_ALERT"):
            return None
        m = _ssh_accepted.search(line)
        if m is None:
            return None
        addr = _address(m[3])
        if addr is None:
            return None
        return SSHLogin(account=m[2], address=addr, method=m[1])

    def console_login(self, line: str) -> bool:
        """Return True if <line> reports a root login on the console."""
        return self.cfg.flag("LF_CONSOLE_EMAIL_ALERT") and \
            _console_root.search(line) is not None

    def cpanel_login(self, line: str) -> Optional[LoginEvent]:
        """Recognize a successful cPanel login in the access log."""
        if not self.cfg.flag("LF_CPANEL_ALERT"):
            return None
        m = _cpanel_ok.search(line)
        if m is None:
            return None
        addr = _address(m[1])
        if addr is None:
            return None
        return LoginEvent(app=App.cpanel, account=m[2], address=addr)

    def port_scan(self, line: str, snapshot: NetSnapshot) -> Optional[PortScanHit]:
        """Recognize a packet dropped by the firewall.

        <snapshot> provides the local and broadcast addresses, so packets to a
        foreign broadcast address can be told apart from those sent to us.
        """
        if not _kernel_fw.search(line):
            return None
        ps_ports: Final[str] = self.cfg.string("PS_PORTS")
        if "INVALID" not in ps_ports and _fw_invalid.search(line):
            return None

        m = _fw_packet.search(line)
        if m is not None:
            src, dst, proto, port = m[1], m[2], m[3], m[4]
            if "BRD" not in ps_ports and proto == "UDP" and \
               snapshot.is_broadcast(dst) and not snapshot.is_local(dst):
                return None
            if "OPEN" not in ps_ports:
                key: Optional[str] = None
                if proto == "TCP" and _fw_tcp_in.search(line):
                    key = "TCP_IN"
                elif proto == "UDP" and _fw_udp_in.search(line):
                    key = "UDP_IN"
                if key is not None:
                    ranges = self.cfg.ports(key)
                    if ranges is not None and any(int(port) in r for r in ranges):
                        self.log.debug("*Port Scan* ignored %s port: %s:%s",
                                       key,
                                       src,
                                       port)
                        return None
            addr = _address(src)
            if addr is None:
                return None
            return PortScanHit(address=addr, port=port)

        for pat in (_fw_icmp, _fw_icmp6):
            m = pat.search(line)
            if m is not None:
                addr = _address(m[1])
                if addr is None:
                    return None
                return PortScanHit(address=addr, port=m[2])
        return None

    def uid_line(self, line: str) -> Optional[tuple[str, str]]:
        """Recognize an outgoing packet blocked by UID. Return the port and the UID."""
        if not _kernel_fw_any.search(line):
            return None
        m = _fw_uid.search(line)
        if m is None:
            return None
        return (m[1], m[2])

    def port_knock(self, line: str) -> Optional[PortScanHit]:
        """Recognize a port knocking attempt."""
        if not _knock.search(line):
            return None
        m = _knock_packet.search(line)
        if m is None:
            return None
        addr = _address(m[1])
        if addr is None:
            return None
        return PortScanHit(address=addr, port=m[2])

    def relay_check(self, line: str) -> Optional[RelayEvent]:
        """Recognize a message accepted by Exim and label how it got in.

        The kind is LOCALRELAY for local submissions, AUTHRELAY for
        authenticated SMTP and RELAY for plain SMTP.
        """
        tline: Final[str] = _quoted_pat.sub('""', line)
        if not _exim_in.search(tline):
            return None

        m = _exim_local.search(tline)
        if m is not None:
            return RelayEvent(source=m[1], kind="LOCALRELAY")

        m = _exim_host.search(tline)
        if m is None:
            return None
        src: str = m[1]
        if src not in _loopback:
            addr = checkip.validate(src)
            if addr is None:
                return None
            src = addr.text

        if _exim_auth.search(tline) and _exim_authproto.search(tline):
            return RelayEvent(source=src, kind="AUTHRELAY")
        if _exim_relay.search(tline):
            return RelayEvent(source=src, kind="RELAY")
        return None

    def dist_ftp_login(self, line: str) -> Optional[LoginEvent]:
        """Recognize a successful FTP login."""
        return self._first_line(dist_ftp_rules, line)

    def dist_smtp_login(self, line: str) -> Optional[LoginEvent]:
        """Recognize a successful authenticated SMTP submission, Postfix or Exim."""
        m = _postfix_sasl.search(line)
        if m is not None:
            addr = _address(m[1])
            if addr is None:
                return None
            return LoginEvent(app=App.smtpauth, account=m[2], address=addr)

        tline: Final[str] = _quoted_pat.sub('""', line)
        if not _exim_in.search(tline) or _exim_local.search(tline):
            return None
        m = _exim_host.search(tline)
        if m is None:
            return None
        addr = checkip.validate(m[1])
        if addr is None:
            return None
        am = _exim_auth.search(tline)
        if am is not None and _exim_authproto.search(tline):
            return LoginEvent(app=App.smtpauth, account=am[1], address=addr)
        return None

    def _apache(self, pat: re.Pattern, line: str) -> Optional[Address]:
        m = pat.search(line)
        if m is None:
            return None
        ip: str = checkip.strip_mapped(m[1])
        if self.cfg.integer("LF_APACHE_ERRPORT") == 2:
            pm = _errport_pat.match(ip)
            if pm is not None:
                ip = pm[1]
        return checkip.validate(ip)

    def apache_404(self, line: str) -> Optional[Address]:
        """Recognize a request for a file that does not exist."""
        return self._apache(_apache_404, line)

    def apache_403(self, line: str) -> Optional[Address]:
        """Recognize a request denied by the server configuration."""
        return self._apache(_apache_403, line)

    def apache_401(self, line: str) -> Optional[Address]:
        """Recognize a failed basic authentication."""
        return self._apache(_apache_401, line)

    @staticmethod
    def is_stats_line(line: str) -> bool:
        """Return True if <line> was written by the firewall or the port knocking rules."""
        return _stats.search(line) is not None

    @staticmethod
    def syslog_check(line: str, code: str) -> bool:
        """Return True if <line> is our own syslog check message carrying <code>."""
        m = _syslog_check.search(line)
        return m is not None and m[1] == code


def load_custom_rules(path: Union[str, Path]) -> list[Rule]:
    """Load custom rules from the TOML file at <path>."""
    return RuleLoader().load(path)


# Local Variables: #
# python-indent: 4 #
# End: #
