#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-07 21:33:47 krylon>
#
# /data/code/python/pywarden/rules.py
# created on 14. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.rules

(c) 2026 Benjamin Walkenhorst

The rule tables the Classifier works through. Order matters: the first
enabled rule whose pattern matches a line decides the outcome for that line,
so a specific pattern has to come before a more general one that would also
match.
"""

import logging
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Final, Generic, Mapping, Optional, TypeVar, Union

from pywarden import common
from pywarden.config import Config
from pywarden.model import App

T = TypeVar("T")

# Syslog prefix, either "host" style or "Mon DD HH:MM:SS" style.
SYS: Final[str] = r"^(?:\S+|\S+\s+\d+\s+\S+) "
# Apache error log prefix, up to and including the client address.
APACHE: Final[str] = r"^\[\S+\s+\S+\s+\S+\s+\S+\s+\S+\] \[(?:\S*:)?error\] " + \
    r"(?:\[pid \d+(?::tid \d+)?\] )?\[(?:client|remote) (?P<ip>\S+)\] (?:\w+: )?"
# ModSecurity v2 denial in the Apache error log.
MODSEC: Final[str] = r"^\[\S+\s+\S+\s+\S+\s+\S+\s+\S+\] \[(?:\S*:)?error\] " + \
    r"(?:\[pid \d+(?::tid \d+)?\] )?\[(?:client|remote) (?P<ip>\S+)\]" + \
    r"(?: \[client \S+\])? (?:\w+: )?ModSecurity:(?:(?: \[[^\]]+\])*)? Access denied"
DOVECOT: Final[str] = r"(?:Disconnected: )?(?:Aborted login(?: by logging out)?|Connection closed" + \
    r"|Disconnected|Disconnected: Inactivity)"
AUTHFAIL: Final[str] = r"(?:\s*\(auth failed, \d+ attempts(?: in \d+ secs)?\))?"
PAMFAIL: Final[str] = r"authentication failure; logname=\S*\s+\S+\s+\S+\s+\S+\s+ruser="

_hostname_pat: Final[re.Pattern] = re.compile(r'\] \[hostname "([^"]+)"\] \[')
_ruleid_pat: Final[re.Pattern] = re.compile(r'\[id "(\d+)"\]')
_errport_pat: Final[re.Pattern] = re.compile(r"^(.*):\d+$")

ssh_paths: Final[tuple[str, ...]] = ("/var/log/messages", "/var/log/secure")


@dataclass(frozen=True, slots=True, kw_only=True)
class Extracted:
    """Extracted is the raw payload pulled out of a matching line, before validation."""

    ip: str
    account: Optional[str] = None
    domain: Optional[str] = None
    reason: Optional[str] = None


Extractor = Callable[[re.Match, str], Extracted]


def extract_plain(m: re.Match, _line: str) -> Extracted:
    """Return the ip and acc groups as they are."""
    groups: Final[dict[str, Any]] = m.groupdict()
    return Extracted(ip=groups["ip"], account=groups.get("acc"))


def extract_angle(m: re.Match, _line: str) -> Extracted:
    """Dovecot wraps the user name in angle brackets."""
    acc: Optional[str] = m.groupdict().get("acc")
    if acc is not None:
        acc = acc.removeprefix("<").removesuffix(">")
    return Extracted(ip=m["ip"], account=acc)


def extract_colon(m: re.Match, _line: str) -> Extracted:
    """ProFTPd sometimes appends a colon to the user name."""
    acc: Optional[str] = m.groupdict().get("acc")
    if acc is not None:
        acc = acc.rstrip(":")
    return Extracted(ip=m["ip"], account=acc)


def extract_pureftpd(m: re.Match, _line: str) -> Extracted:
    """Pure-FTPd writes IPv6 addresses with underscores instead of colons."""
    return Extracted(ip=m["ip"].replace("_", ":"), account=m["acc"])


def extract_domain(m: re.Match, line: str) -> Extracted:
    """Pick up the virtual host a web request was addressed to."""
    dm = _hostname_pat.search(line)
    return Extracted(ip=m["ip"], account="", domain=dm[1] if dm else "")


def extract_modsec(m: re.Match, line: str) -> Extracted:
    """Like extract_domain, but also put the ModSecurity rule ID into the reason."""
    dm = _hostname_pat.search(line)
    rm = _ruleid_pat.search(line)
    ruleid: Final[str] = rm[1] if rm else "unknown"
    return Extracted(ip=m["ip"],
                     account="",
                     domain=dm[1] if dm else "",
                     reason=f"mod_security (id:{ruleid}) triggered by")


@dataclass(frozen=True, slots=True, kw_only=True)
class Rule:
    """Rule recognizes one kind of log line and says what it means.

    A Rule only applies when its configuration flag is set and the line comes
    from a log file in its log set.
    """

    name: str
    flag: str
    logs: str
    pattern: re.Pattern
    app: App
    reason: str
    paths: tuple[str, ...] = ()
    exclude: Optional[re.Pattern] = None
    strip_port: bool = False
    extract: Extractor = extract_plain
    trigger: Optional[str] = None

    def enabled(self, cfg: Config) -> bool:
        """Return True if the Rule is switched on."""
        return self.flag == "" or cfg.flag(self.flag)

    def applies(self, source: str, log_sets: Mapping[str, Any]) -> bool:
        """Return True if lines from <source> are subject to this Rule."""
        if self.logs == "":
            return True
        if source in self.paths:
            return True
        return source in log_sets.get(self.logs, ())

    def match(self, line: str) -> Optional[re.Match]:
        """Return the match of the Rule's pattern against <line>, if any."""
        m = self.pattern.search(line)
        if m is None:
            return None
        if self.exclude is not None and self.exclude.search(line):
            return None
        return m

    def payload(self, m: re.Match, line: str, errport: int) -> Extracted:
        """Extract the payload from a match."""
        ex: Extracted = self.extract(m, line)
        if self.strip_port and errport == 2:
            pm = _errport_pat.match(ex.ip)
            if pm is not None:
                ex = Extracted(ip=pm[1], account=ex.account, domain=ex.domain, reason=ex.reason)
        return ex


def _r(pat: str) -> re.Pattern:
    return re.compile(pat)


def _sshd(name: str, pat: str) -> Rule:
    return Rule(name=name,
                flag="LF_SSHD",
                logs="SSHD_LOG",
                paths=ssh_paths,
                pattern=_r(SYS + r"(?:\S+ )?sshd\[\d+\]: " + pat),
                app=App.sshd,
                reason="Failed SSH login from")


def _pop3(name: str, pat: str) -> Rule:
    return Rule(name=name, flag="LF_POP3D", logs="POP3D_LOG", pattern=_r(pat),
                app=App.pop3d, reason="Failed POP3 login from", extract=extract_angle)


def _imap(name: str, pat: str) -> Rule:
    return Rule(name=name, flag="LF_IMAPD", logs="IMAPD_LOG", pattern=_r(pat),
                app=App.imapd, reason="Failed IMAP login from", extract=extract_angle)


def _ftp(name: str, pat: str, extract: Extractor = extract_plain) -> Rule:
    return Rule(name=name, flag="LF_FTPD", logs="FTPD_LOG", pattern=_r(pat),
                app=App.ftpd, reason="Failed FTP login from", extract=extract)


def _web(name: str, pat: str, strip_port: bool = False) -> Rule:
    return Rule(name=name, flag="LF_HTACCESS", logs="HTACCESS_LOG", pattern=_r(pat),
                app=App.htpasswd, reason="Failed web page login from", strip_port=strip_port)


_dovecot_tail: Final[str] = AUTHFAIL + r": (?:user=(?P<acc><\S*>)?, )?(?:method=\S+, )?rip=(?P<ip>\S+), lip="
_proftpd: Final[str] = SYS + r"\S+ proftpd\[\d+\]:? \S+ \([^\[]+\[(?P<ip>\S+)\]\)(?: -)?:? "

builtin_rules: Final[tuple[Rule, ...]] = (
    # OpenSSH, RedHat style
    _sshd("sshd_pam",
          r"pam_unix\(sshd:auth\): authentication failure; logname=\S* uid=\S* euid=\S* "
          r"tty=\S* ruser=\S* rhost=(?P<ip>\S+)\s+(?:user=(?P<acc>\S+))?"),
    _sshd("sshd_failed_none", r"Failed none for (?P<acc>\S*) from (?P<ip>\S+) port \S+"),
    _sshd("sshd_failed_password",
          r"Failed password for (?:invalid user |illegal user )?(?P<acc>\S*) from (?P<ip>\S+)"
          r"(?: port \S+ \S+\s*)?"),
    _sshd("sshd_failed_kbdint",
          r"Failed keyboard-interactive(?:/pam)? for (?:invalid user )?(?P<acc>\S*) "
          r"from (?P<ip>\S+) port \S+"),
    _sshd("sshd_invalid_user", r"Invalid user (?P<acc>\S*) from (?P<ip>\S+)"),
    _sshd("sshd_not_allowed",
          r"User (?P<acc>\S*) from (?P<ip>\S+)\s* not allowed because not listed in AllowUsers"),
    _sshd("sshd_no_ident", r"Did not receive identification string from (?P<ip>\S+)"),
    _sshd("sshd_refused", r"refused connect from (?P<ip>\S+)"),
    _sshd("sshd_max_auth",
          r"error: maximum authentication attempts exceeded for (?P<acc>\S*) from (?P<ip>\S+)"),
    # OpenSSH, Debian style
    _sshd("sshd_illegal_user", r"Illegal user (?P<acc>\S*) from (?P<ip>\S+)"),

    # Dovecot
    _pop3("dovecot_pop3",
          SYS + r"\S+ dovecot(?:\[\d+\])?: pop3-login: " + DOVECOT +
          r"(?::\s*\S+\sfailed: Connection reset by peer)?" + _dovecot_tail),
    _imap("dovecot_imap",
          SYS + r"\S+ dovecot(?:\[\d+\])?: imap-login: " + DOVECOT +
          r"(?::\s*\S+\sfailed: Connection reset by peer)?" + _dovecot_tail),
    _pop3("dovecot_pop3_info",
          SYS + r"pop3-login(?:\[\d+\])?: Info: " + DOVECOT + _dovecot_tail),
    _imap("dovecot_imap_info",
          SYS + r"imap-login(?:\[\d+\])?: Info: " + DOVECOT + _dovecot_tail),

    # Pure-FTPd
    _ftp("pureftpd_auth",
         SYS + r"\S+ pure-ftpd(?:\[\d+\])?: \(\?@(?P<ip>\S+)\) \[WARNING\] "
         r"Authentication failed for user \[(?P<acc>\S*)\]",
         extract_pureftpd),

    # ProFTPd
    _ftp("proftpd_no_such_user", _proftpd + r"- no such user '(?P<acc>\S*)'", extract_colon),
    _ftp("proftpd_user_not_found", _proftpd + r"USER (?P<acc>\S*) no such user found from",
         extract_colon),
    _ftp("proftpd_violation", _proftpd + r"- SECURITY VIOLATION"),
    _ftp("proftpd_bad_password",
         _proftpd + r"- USER (?P<acc>\S*) \(Login failed\): Incorrect password", extract_colon),

    # vsftpd
    _ftp("vsftpd_fail",
         r'^\S+\s+\S+\s+\d+\s+\S+\s+\d+ \[pid \d+\] \[(?P<acc>\S+)\] FAIL LOGIN: Client "(?P<ip>\S+)"'),
    _ftp("vsftpd_pam",
         SYS + r"\S+ vsftpd\[\d+\]: pam_unix\(\S+\): " + PAMFAIL +
         r"\S*\s+rhost=(?P<ip>\S+)(?:\s+user=(?P<acc>\S*))?"),
    _ftp("vsftpd_pam_old",
         SYS + r"\S+ vsftpd\(pam_unix\)\[\d+\]: " + PAMFAIL +
         r"\S*\s+rhost=(?P<ip>\S+)(?:\s+user=(?P<acc>\S*))?"),

    # Apache basic auth
    _web("apache_htaccess",
         APACHE + r"user (?P<acc>\S*)(?:(?: not found:)|(?:: authentication failure for))",
         strip_port=True),

    # nginx basic auth
    _web("nginx_no_user",
         r"^\S+ \S+ \[error\] \S+ \*\S+ no user/password was provided for basic authentication, "
         r"client: (?P<ip>\S+),"),
    _web("nginx_mismatch",
         r'^\S+ \S+ \[error\] \S+ \*\S+ user "(?P<acc>\S*)": password mismatch, client: (?P<ip>\S+),'),
    _web("nginx_not_found",
         r'^\S+ \S+ \[error\] \S+ \*\S+ user "(?P<acc>\S*)" was not found in ".*?", '
         r'client: (?P<ip>\S+),'),

    # cxs upload scanning, Apache and LiteSpeed
    Rule(name="cxs_apache",
         flag="LF_CXS",
         logs="MODSEC_LOG",
         pattern=_r(MODSEC + r' with code \d\d\d \(phase 2\)\. File "[^"]*" rejected by the '
                    r'approver script "/etc/cxs/cxscgi\.sh"'),
         app=App.cxs,
         reason="cxs mod_security triggered by",
         strip_port=True,
         extract=extract_domain),
    Rule(name="cxs_litespeed",
         flag="LF_CXS",
         logs="MODSEC_LOG",
         pattern=_r(MODSEC + r" with code \d\d\d, \[Rule: 'FILES_TMPNAMES' "
                    r"'@inspectFile /etc/cxs/cxscgi\.sh'\] \[id \"1010101\"\]"),
         app=App.cxs,
         reason="cxs mod_security triggered by",
         strip_port=True,
         extract=extract_domain),

    # ModSecurity
    Rule(name="modsec_v1",
         flag="LF_MODSEC",
         logs="MODSEC_LOG",
         pattern=_r(r"^\[\S+\s+\S+\s+\S+\s+\S+\s+\S+\] \[error\] \[(?:client|remote) (?P<ip>\S+)\] "
                    r"mod_security: Access denied"),
         app=App.mod_security,
         reason="mod_security triggered by",
         extract=extract_domain),
    Rule(name="modsec_v2_apache",
         flag="LF_MODSEC",
         logs="MODSEC_LOG",
         pattern=_r(MODSEC),
         app=App.mod_security,
         reason="mod_security triggered by",
         strip_port=True,
         extract=extract_modsec),
    Rule(name="modsec_v2_nginx",
         flag="LF_MODSEC",
         logs="MODSEC_LOG",
         pattern=_r(r"^\S+ \S+ \[\S+\] \S+ \[(?:client|remote) (?P<ip>\S+)\] "
                    r"ModSecurity:(?:(?: \[[^\]]+\])*)? Access denied"),
         app=App.mod_security,
         reason="mod_security triggered by",
         extract=extract_modsec),

    # BIND
    Rule(name="bind_denied",
         flag="LF_BIND",
         logs="BIND_LOG",
         pattern=_r(SYS + r"\S+ named\[\d+\]: client(?: \S+)? (?P<ip>\S+)#\d+(?:\s\(\S+\))?:"
                    r"(?: view external:)? (?:update|zone transfer|query \(cache\)) '[^']*' denied$"),
         app=App.bind,
         reason="bind triggered by"),

    # Suhosin
    Rule(name="suhosin_alert",
         flag="LF_SUHOSIN",
         logs="SUHOSIN_LOG",
         pattern=_r(SYS + r"\S+ suhosin\[\d+\]: ALERT - .* \(attacker '(?P<ip>\S+)'"),
         exclude=_r(r"script tried to increase memory_limit"),
         app=App.suhosin,
         reason="Suhosin triggered by"),

    # cPanel/WHM
    Rule(name="cpanel_failed",
         flag="LF_CPANEL",
         logs="CPANEL_LOG",
         pattern=_r(r'^\[\S+\s+\S+\s+\S+\] \w+ \[\w+\] (?P<ip>\S+) - (?P<acc>\S+) "[^"]+" FAILED LOGIN'),
         app=App.cpanel,
         reason="Failed cPanel login from"),
    Rule(name="cpanel_failed_access",
         flag="LF_CPANEL",
         logs="CPANEL_LOG",
         pattern=_r(r'^(?P<ip>\S+) - (?P<acc>\S+)? \[\S+ \S+\] "[^"]*" FAILED LOGIN'),
         app=App.cpanel,
         reason="Failed cPanel login from"),

    # Exim SMTP AUTH
    Rule(name="exim_auth",
         flag="LF_SMTPAUTH",
         logs="SMTPAUTH_LOG",
         pattern=_r(r"^\S+\s+\S+\s+(?:\[\d+\] )?\S+ authenticator failed for \S+ (?:\S+ )?"
                    r"\[(?P<ip>\S+)\](?::\S*:?)?(?: I=\S+| \d+:)? 535 Incorrect authentication data"
                    r"(?: \(set_id=(?P<acc>\S+)\))?"),
         app=App.smtpauth,
         reason="Failed SMTP AUTH login from"),

    # Exim syntax errors
    Rule(name="exim_syntax",
         flag="LF_EXIMSYNTAX",
         logs="SMTPAUTH_LOG",
         pattern=_r(r"^\S+\s+\S+\s+(?:\[\d+\] )?SMTP call from (?:\S+ )?\[(?P<ip>\S+)\]"
                    r"(?::\S*:?)?(?: I=\S+)? dropped: too many syntax or protocol errors"),
         app=App.eximsyntax,
         reason="Exim syntax errors from"),
    Rule(name="exim_auth_not_advertised",
         flag="LF_EXIMSYNTAX",
         logs="SMTPAUTH_LOG",
         pattern=_r(r'^\S+\s+\S+\s+(?:\[\d+\] )?SMTP protocol error in "[^"]+" H=\S+ (?:\S+ )?'
                    r"\[(?P<ip>\S+)\](?::\S*:?)?(?: I=\S+)? AUTH command used when not advertised"),
         app=App.eximsyntax,
         reason="Exim syntax errors from"),

    # mod_qos
    Rule(name="mod_qos",
         flag="LF_QOS",
         logs="HTACCESS_LOG",
         pattern=_r(APACHE + r"mod_qos\(\d+\): access denied,"),
         app=App.mod_qos,
         reason="mod_qos triggered by",
         strip_port=True),

    # Apache symlink race condition
    Rule(name="symlink_race",
         flag="LF_SYMLINK",
         logs="MODSEC_LOG",
         pattern=_r(APACHE + r"Caught race condition abuser"),
         exclude=_r(r"/cgi-sys/suspendedpage\.cgi$"),
         app=App.symlink,
         reason="symlink race condition triggered by",
         strip_port=True),
)


@dataclass(frozen=True, slots=True, kw_only=True)
class LineRule(Generic[T]):
    """LineRule is a simpler rule for the narrower extractors.

    <build> turns a match into a result; it may return None if the payload
    turns out to be unusable, which still ends the search.
    """

    name: str
    flag: str
    pattern: re.Pattern
    build: Callable[[re.Match], Optional[T]]

    def enabled(self, cfg: Config) -> bool:
        """Return True if the LineRule is switched on."""
        return self.flag == "" or cfg.flag(self.flag)


@dataclass(kw_only=True, slots=True)
class RuleLoader:
    """RuleLoader reads custom rules from a TOML file.

    Each rule is a [[rule]] table:

        [[rule]]
        name = "myapp"
        logs = "CUSTOM1_LOG"
        pattern = 'myapp: bad login from (?P<ip>\\S+) user (?P<acc>\\S+)'
        reason = "Failed myapp login from"
        trigger = "LF_CUSTOMTRIGGER"

    Rules that cannot be compiled are logged and skipped.
    """

    log: logging.Logger = field(default_factory=lambda: common.get_logger("rules"))

    def load(self, path: Union[str, Path]) -> list[Rule]:
        """Load the custom rules from <path>."""
        with open(path, "rb") as fh:
            data: Final[dict[str, Any]] = tomllib.load(fh)
        return self.from_list(data.get("rule", []))

    def from_list(self, items: list[dict[str, Any]]) -> list[Rule]:
        """Build Rules from a list of dictionaries."""
        rules: list[Rule] = []
        for idx, item in enumerate(items):
            name: str = str(item.get("name", f"custom{idx+1:02d}"))
            try:
                pat: re.Pattern = re.compile(item["pattern"])
            except (KeyError, re.error) as err:
                self.log.error("Custom rule %s has no usable pattern: %s",
                               name,
                               err)
                continue
            if "ip" not in pat.groupindex:
                self.log.error("Custom rule %s does not capture an address (?P<ip>...)",
                               name)
                continue

            rules.append(Rule(name=name,
                              flag=str(item.get("flag", "")),
                              logs=str(item.get("logs", "")),
                              paths=tuple(item.get("paths", ())),
                              pattern=pat,
                              app=App.custom,
                              reason=str(item.get("reason", f"{name} triggered by")),
                              trigger=item.get("trigger")))
        self.log.debug("Loaded %d custom rules", len(rules))
        return rules


# Local Variables: #
# python-indent: 4 #
# End: #
