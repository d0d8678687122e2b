#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-14 17:09:22 krylon>
#
# /data/code/python/pywarden/pipeline.py
# created on 22. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.pipeline

(c) 2026 Benjamin Walkenhorst

The Pipeline connects the pieces: it classifies a log line, counts the
failures per address, looks up the address and bans it once it has
misbehaved often enough or is listed in an RBL.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Final, Mapping, Optional, Sequence, Union

from pywarden import common
from pywarden.classifier import Classifier, load_custom_rules
from pywarden.config import Config, ConfigError, port_set
from pywarden.enrich import Enricher, LookupMode
from pywarden.killer import Killer
from pywarden.model import (App, RBLStatus, ReputationRecord,
                            SecurityEvent)
from pywarden.rules import Rule

# The configuration key holding the ban threshold for each App.
thresholds: Final[dict[App, str]] = {
    App.sshd: "LF_SSHD",
    App.ftpd: "LF_FTPD",
    App.pop3d: "LF_POP3D",
    App.imapd: "LF_IMAPD",
    App.htpasswd: "LF_HTACCESS",
    App.mod_security: "LF_MODSEC",
    App.cxs: "LF_CXS",
    App.bind: "LF_BIND",
    App.suhosin: "LF_SUHOSIN",
    App.cpanel: "LF_CPANEL",
    App.smtpauth: "LF_SMTPAUTH",
    App.eximsyntax: "LF_EXIMSYNTAX",
    App.mod_qos: "LF_QOS",
    App.symlink: "LF_SYMLINK",
}


@dataclass(kw_only=True, slots=True)
class Pipeline:
    """Pipeline processes log lines one at a time and bans misbehaving addresses.

    Each address is banned at most once per Pipeline.
    """

    cfg: Config
    classifier: Classifier
    enricher: Enricher
    killer: Killer
    audit: logging.Logger = field(default_factory=common.get_audit_logger)
    log: logging.Logger = field(default_factory=lambda: common.get_logger("pipeline"))
    counts: dict[tuple[str, App], int] = field(default_factory=dict)
    banned: set[str] = field(default_factory=set)
    lock: Lock = field(default_factory=Lock)

    @classmethod
    def from_config(cls,
                    cfg: Config,
                    custom: Optional[Union[str, Path, Sequence[Rule]]] = None) -> 'Pipeline':
        """Create a Pipeline as configured.

        <custom> may be a sequence of Rules or the path of a TOML file to load
        them from.
        """
        rules: Sequence[Rule] = ()
        if isinstance(custom, (str, Path)):
            rules = load_custom_rules(custom)
        elif custom is not None:
            rules = custom

        audit: Final[logging.Logger] = common.get_audit_logger(cfg.flag("SYSLOG"))
        return cls(cfg=cfg,
                   classifier=Classifier(cfg=cfg, custom=rules),
                   enricher=Enricher.from_config(cfg),
                   killer=Killer(audit=audit),
                   audit=audit)

    def threshold(self, ev: SecurityEvent) -> int:
        """Return the number of events from one address that trigger a ban.

        Custom rules name their threshold through their trigger, a custom
        rule without a trigger bans on the first event.
        """
        if ev.trigger:
            return self.cfg.integer(ev.trigger)
        key: Final[Optional[str]] = thresholds.get(ev.app)
        if key is None:
            return 1
        return self.cfg.integer(key)

    def mode(self) -> LookupMode:
        """Return the LookupMode to use for offending addresses."""
        if self.cfg.flag("LF_LOOKUPS") or \
           (self.enricher.rbl is not None and len(self.enricher.rbl.zones) > 0):
            return LookupMode.Full
        return LookupMode.CountryCode

    def process(self,
                line: str,
                source: str,
                log_sets: Mapping[str, Any]) -> Optional[SecurityEvent]:
        """Process one line from the log file <source>.

        Return the SecurityEvent the line describes, if any.
        """
        ev: Final[Optional[SecurityEvent]] = self.classifier.classify(line, source, log_sets)
        if ev is None:
            return None

        key: Final[tuple[str, App]] = (ev.address.host, ev.app)
        with self.lock:
            count: int = self.counts.get(key, 0) + 1
            self.counts[key] = count

        rec: Final[ReputationRecord] = self.enricher.enrich(ev.address, self.mode())
        limit: Final[int] = self.threshold(ev)

        self.log.debug("%s from %s (%s), %d of %d",
                       ev.app.value,
                       ev.address,
                       ev.account,
                       count,
                       limit)

        if limit > 0 and count >= limit:
            self.ban(ev, rec, f"{count} failure(s)")
        elif self.cfg.flag("LF_RBL_BAN") and rec.rbl_hit == RBLStatus.Listed:
            zones: Final[str] = ", ".join(r.zone for r in rec.rbl
                                          if r.status == RBLStatus.Listed)
            self.ban(ev, rec, f"listed in {zones}")

        return ev

    def ban(self, ev: SecurityEvent, rec: ReputationRecord, why: str) -> bool:
        """Ban the address of <ev>, unless we already did.

        Return True if the address was banned now.
        """
        host: Final[str] = ev.address.host
        with self.lock:
            if host in self.banned:
                return False
            self.banned.add(host)

        self.audit.warning("(%s) %s %s: %s - *Blocked*",
                           ev.app.value,
                           ev.reason,
                           self.enricher.summary(rec),
                           why)

        if self.cfg.flag("PT_SSHDKILL"):
            try:
                ports = port_set(self.cfg.string("PORTS_sshd"))
            except ConfigError as err:
                self.log.error("Cannot terminate sessions of %s: %s", host, err)
            else:
                self.killer.terminate_sessions(ev.address, ports)

        return True


# Local Variables: #
# python-indent: 4 #
# End: #
