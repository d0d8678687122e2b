#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-15 19:02:16 krylon>
#
# /data/code/python/pywarden/test_pipeline.py
# created on 22. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.test_pipeline

(c) 2026 Benjamin Walkenhorst
"""

import os
import shutil
import unittest
from datetime import datetime
from pathlib import Path
from typing import Any, Final, Optional
from unittest import mock

from pywarden import common
from pywarden.classifier import Classifier
from pywarden.config import Config
from pywarden.enrich import Enricher, LookupMode
from pywarden.flatcache import RBLCache
from pywarden.geo import GeoDB
from pywarden.model import App
from pywarden.pipeline import Pipeline
from pywarden.rbl import RBLChecker, RBLResolver, Zone, ZoneList
from pywarden.rules import Rule, RuleLoader

test_dir: Final[str] = os.path.join(
    "/tmp",
    datetime.now().strftime(f"{common.AppName.lower()}_test_pipeline_%Y%m%d_%H%M%S"))

SECURE: Final[str] = "/var/log/secure"
LINE: Final[str] = "Jan 10 12:00:00 myhost sshd[1234]: Failed password for root from {} port 4444 ssh2"


class ListingResolver(RBLResolver):
    """ListingResolver lists the addresses it was given in every zone."""

    def __init__(self, listed: set[str]) -> None:
        self.listed = listed

    def address(self, name: str, timeout: float) -> str:
        for addr in self.listed:
            rev = ".".join(reversed(addr.split(".")))
            if name.startswith(rev + "."):
                return "127.0.0.2"
        return ""

    def text(self, name: str, timeout: float) -> list[str]:
        return ["Listed for testing"]

    def hostname(self, addr: str, timeout: float) -> str:
        return ""


class TestPipeline(unittest.TestCase):
    """Test processing log lines from start to finish."""

    @classmethod
    def setUpClass(cls) -> None:
        """Prepare the testing environment."""
        common.set_basedir(test_dir)

    @classmethod
    def tearDownClass(cls) -> None:
        """Clean up afterwards."""
        shutil.rmtree(test_dir, ignore_errors=True)

    def _pipeline(self,
                  name: str,
                  listed: Optional[set[str]] = None,
                  custom: Optional[list[Rule]] = None,
                  **values: Any) -> Pipeline:
        folder: Final[Path] = Path(test_dir, name)
        folder.mkdir()
        settings: dict[str, Any] = {"CC_LOOKUPS": 0, "LF_LOOKUPS": 0}
        settings.update(values)
        cfg: Final[Config] = Config(values=settings)

        rbl: Optional[RBLChecker] = None
        if listed is not None:
            rbl = RBLChecker(zones=ZoneList(zones=[Zone("zen.spamhaus.org")]),
                             resolver=ListingResolver(listed),
                             cache=RBLCache(folder=folder))

        return Pipeline(cfg=cfg,
                        classifier=Classifier(cfg=cfg, custom=custom or []),
                        enricher=Enricher(cfg=cfg, geo=GeoDB(folder=folder), rbl=rbl),
                        killer=mock.MagicMock(),
                        audit=mock.MagicMock())

    def test_01_rbl_ban(self) -> None:
        """Test that an address listed in an RBL is banned on the first failure."""
        pipe = self._pipeline("rbl", listed={"198.51.100.9"}, LF_RBL_BAN=1, PT_SSHDKILL=1)
        self.assertEqual(pipe.mode(), LookupMode.Full)

        ev = pipe.process(LINE.format("198.51.100.9"), SECURE, {})
        self.assertIsNotNone(ev)
        assert ev is not None
        self.assertEqual(ev.app, App.sshd)
        self.assertIn("198.51.100.9", pipe.banned)

        pipe.audit.warning.assert_called_once_with("(%s) %s %s: %s - *Blocked*",
                                                   "sshd",
                                                   "Failed SSH login from",
                                                   "198.51.100.9",
                                                   "listed in zen.spamhaus.org")
        pipe.killer.terminate_sessions.assert_called_once()
        addr, ports = pipe.killer.terminate_sessions.call_args.args
        self.assertEqual(addr, ev.address)
        self.assertEqual(ports, frozenset({22}))

        # A second failure does not ban the address again.
        pipe.process(LINE.format("198.51.100.9"), SECURE, {})
        pipe.killer.terminate_sessions.assert_called_once()
        self.assertEqual(pipe.audit.warning.call_count, 1)

    def test_02_rbl_ban_off(self) -> None:
        """Test that a listing alone does not ban the address unless LF_RBL_BAN is set."""
        pipe = self._pipeline("rbl_off", listed={"198.51.100.9"}, PT_SSHDKILL=1)
        pipe.process(LINE.format("198.51.100.9"), SECURE, {})
        self.assertEqual(pipe.banned, set())
        pipe.killer.terminate_sessions.assert_not_called()

    def test_03_threshold(self) -> None:
        """Test that an address is banned once it reaches the threshold."""
        pipe = self._pipeline("threshold", LF_SSHD=3)
        self.assertEqual(pipe.mode(), LookupMode.CountryCode)

        for i in range(2):
            pipe.process(LINE.format("203.0.113.20"), SECURE, {})
            pipe.process(LINE.format("203.0.113.21"), SECURE, {})
            self.assertEqual(pipe.banned, set(), f"banned after {i+1} failures")

        pipe.process(LINE.format("203.0.113.20"), SECURE, {})
        self.assertEqual(pipe.banned, {"203.0.113.20"})
        self.assertEqual(pipe.counts[("203.0.113.20", App.sshd)], 3)
        pipe.audit.warning.assert_called_once()
        self.assertEqual(pipe.audit.warning.call_args.args[-1], "3 failure(s)")
        pipe.killer.terminate_sessions.assert_not_called()

    def test_04_custom_threshold(self) -> None:
        """Test the thresholds of custom rules."""
        rules = RuleLoader().from_list([
            {"name": "once", "pattern": r"myapp: intruder (?P<ip>\S+)"},
            {"name": "twice", "pattern": r"otherapp: intruder (?P<ip>\S+)", "trigger": "LF_OTHER"},
        ])
        pipe = self._pipeline("custom", custom=rules, LF_OTHER=2)

        ev = pipe.process("myapp: intruder 203.0.113.30", "/var/log/myapp.log", {})
        assert ev is not None
        self.assertEqual(ev.app, App.custom)
        self.assertEqual(pipe.threshold(ev), 1)
        self.assertIn("203.0.113.30", pipe.banned)

        ev = pipe.process("otherapp: intruder 203.0.113.31", "/var/log/otherapp.log", {})
        assert ev is not None
        self.assertEqual(pipe.threshold(ev), 2)
        self.assertNotIn("203.0.113.31", pipe.banned)
        pipe.process("otherapp: intruder 203.0.113.31", "/var/log/otherapp.log", {})
        self.assertIn("203.0.113.31", pipe.banned)

    def test_05_bad_ports(self) -> None:
        """Test that an unusable port list is logged and no sessions are terminated."""
        pipe = self._pipeline("ports", LF_SSHD=1, PT_SSHDKILL=1, PORTS_sshd="ssh")
        pipe.process(LINE.format("203.0.113.40"), SECURE, {})
        self.assertIn("203.0.113.40", pipe.banned)
        pipe.killer.terminate_sessions.assert_not_called()

    def test_06_no_event(self) -> None:
        """Test lines that are not security events."""
        pipe = self._pipeline("none")
        self.assertIsNone(pipe.process("Jan 10 12:00:00 myhost CRON[1]: hello", SECURE, {}))
        self.assertEqual(pipe.counts, {})

# Local Variables: #
# python-indent: 4 #
# End: #
