#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-15 13:21:50 krylon>
#
# /data/code/python/pywarden/test_classifier.py
# created on 20. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.test_classifier

(c) 2026 Benjamin Walkenhorst
"""

import os
import shutil
import unittest
from datetime import datetime
from typing import Any, Final, Optional

from pywarden import common
from pywarden.classifier import FAIL, OK, Classifier, load_custom_rules
from pywarden.config import Config
from pywarden.model import App
from pywarden.netinfo import NetSnapshot
from pywarden.rules import RuleLoader

test_dir: Final[str] = os.path.join(
    "/tmp",
    datetime.now().strftime(f"{common.AppName.lower()}_test_classifier_%Y%m%d_%H%M%S"))

SSH_FAIL: Final[str] = \
    "Jan 10 12:00:00 myhost sshd[1234]: Failed password for invalid user foo from 203.0.113.7 port 4444 ssh2"
SECURE: Final[str] = "/var/log/secure"
SYSLOG: Final[str] = "Jan 10 12:00:00 myhost "
FW: Final[str] = SYSLOG + "kernel: Firewall: "


def _classifier(**values: Any) -> Classifier:
    return Classifier(cfg=Config(values=values))


class TestClassify(unittest.TestCase):
    """Test classifying log lines with the built-in rules."""

    @classmethod
    def setUpClass(cls) -> None:
        """Prepare the testing environment."""
        common.set_basedir(test_dir)

    @classmethod
    def tearDownClass(cls) -> None:
        """Clean up afterwards."""
        shutil.rmtree(test_dir, ignore_errors=True)

    def test_01_sshd(self) -> None:
        """Test a failed SSH login."""
        cls = _classifier()
        ev = cls.classify(SSH_FAIL + "\r\n", SECURE, {})
        self.assertIsNotNone(ev)
        assert ev is not None
        self.assertEqual(ev.app, App.sshd)
        self.assertEqual(ev.account, "foo")
        self.assertEqual(ev.address.text, "203.0.113.7")
        self.assertEqual(ev.rule, "sshd_failed_password")
        self.assertEqual(ev.reason, "Failed SSH login from")

    def test_02_sshd_invalid_address(self) -> None:
        """Test that a match with a bogus address yields nothing."""
        cls = _classifier()
        line: Final[str] = SSH_FAIL.replace("203.0.113.7", "999.1.1.1")
        self.assertIsNone(cls.classify(line, SECURE, {}))
        line2: Final[str] = SSH_FAIL.replace("203.0.113.7", "127.0.0.1")
        self.assertIsNone(cls.classify(line2, SECURE, {}))

    def test_03_log_sets(self) -> None:
        """Test that rules only apply to the files in their log set."""
        cls = _classifier()
        source: Final[str] = "/var/log/auth.log"
        self.assertIsNone(cls.classify(SSH_FAIL, source, {}))
        self.assertIsNone(cls.classify(SSH_FAIL, source, {"FTPD_LOG": [source]}))
        self.assertIsNotNone(cls.classify(SSH_FAIL, source, {"SSHD_LOG": [source]}))

    def test_04_disabled(self) -> None:
        """Test that switching off the flag disables the rules."""
        cls = _classifier(LF_SSHD=0)
        self.assertIsNone(cls.classify(SSH_FAIL, SECURE, {}))

    def test_05_dovecot(self) -> None:
        """Test a failed IMAP login via Dovecot."""
        cls = _classifier(LF_IMAPD=5)
        source: Final[str] = "/var/log/maillog"
        line: Final[str] = SYSLOG + \
            "dovecot: imap-login: Aborted login (auth failed, 1 attempts in 2 secs): " + \
            "user=<bob>, method=PLAIN, rip=203.0.113.8, lip=10.0.0.1"
        ev = cls.classify(line, source, {"IMAPD_LOG": {source}})
        self.assertIsNotNone(ev)
        assert ev is not None
        self.assertEqual(ev.app, App.imapd)
        self.assertEqual(ev.account, "bob")
        self.assertEqual(str(ev.address), "203.0.113.8")

    def test_06_apache_port(self) -> None:
        """Test stripping the client port from Apache error log lines."""
        source: Final[str] = "/var/log/httpd/error_log"
        line: Final[str] = "[Sat Jan 10 12:00:00.123456 2026] [auth_basic:error] [pid 1234] " + \
            "[client 203.0.113.9:51234] AH01618: user admin not found: /secret"
        sets: Final[dict[str, list[str]]] = {"HTACCESS_LOG": [source]}

        ev = _classifier().classify(line, source, sets)
        self.assertIsNotNone(ev)
        assert ev is not None
        self.assertEqual(ev.app, App.htpasswd)
        self.assertEqual(ev.account, "admin")
        self.assertEqual(ev.address.text, "203.0.113.9")

        self.assertIsNone(_classifier(LF_APACHE_ERRPORT=1).classify(line, source, sets))

    def test_07_non_matching(self) -> None:
        """Test lines that do not describe an attack."""
        cls = _classifier()
        test_cases: Final[list[str]] = [
            "",
            "Jan 10 12:00:00 myhost sshd[1234]: Accepted publickey for alice from 203.0.113.5 port 5555 ssh2",
            "Jan 10 12:00:00 myhost CRON[42]: (root) CMD (run-parts /etc/cron.hourly)",
        ]
        for line in test_cases:
            with self.subTest(line=line):
                self.assertIsNone(cls.classify(line, SECURE, {}))


class TestCustomRules(unittest.TestCase):
    """Test custom rules."""

    @classmethod
    def setUpClass(cls) -> None:
        """Prepare the testing environment."""
        common.set_basedir(test_dir)

    @classmethod
    def tearDownClass(cls) -> None:
        """Clean up afterwards."""
        shutil.rmtree(test_dir, ignore_errors=True)

    def test_01_from_list(self) -> None:
        """Test building custom rules, skipping the broken ones."""
        items: Final[list[dict[str, Any]]] = [
            {"name": "myapp",
             "pattern": r"myapp: bad login from (?P<ip>\S+) user (?P<acc>\S+)",
             "trigger": "LF_MYAPP"},
            {"name": "no_ip", "pattern": r"myapp: bad login from (\S+)"},
            {"name": "broken", "pattern": r"myapp: (?P<ip>\S+"},
            {"name": "no_pattern"},
        ]
        rules = RuleLoader().from_list(items)
        self.assertEqual(len(rules), 1)
        self.assertEqual(rules[0].name, "myapp")
        self.assertEqual(rules[0].app, App.custom)
        self.assertEqual(rules[0].trigger, "LF_MYAPP")

    def test_02_precedence(self) -> None:
        """Test that custom rules are tried before the built-in ones."""
        rules = RuleLoader().from_list([
            {"name": "strict_ssh",
             "pattern": r"sshd\[\d+\]: Failed password for (?:invalid user )?(?P<acc>\S+) from (?P<ip>\S+)",
             "reason": "Strict SSH rule triggered by"},
        ])
        cls = Classifier(cfg=Config(), custom=rules)
        ev = cls.classify(SSH_FAIL, SECURE, {})
        self.assertIsNotNone(ev)
        assert ev is not None
        self.assertEqual(ev.app, App.custom)
        self.assertEqual(ev.rule, "strict_ssh")
        self.assertEqual(ev.reason, "Strict SSH rule triggered by")
        self.assertEqual(ev.account, "foo")

        # Lines the custom rules do not match still reach the built-in table.
        line: Final[str] = "Jan 10 12:00:00 myhost sshd[1234]: Invalid user bar from 203.0.113.7"
        ev = cls.classify(line, SECURE, {})
        assert ev is not None
        self.assertEqual(ev.app, App.sshd)

    def test_03_load_toml(self) -> None:
        """Test loading custom rules from a TOML file."""
        path: Final[str] = os.path.join(test_dir, "rules.toml")
        with open(path, "w", encoding="utf-8") as fh:
            fh.write("""
[[rule]]
name = "myapp"
logs = "CUSTOM1_LOG"
pattern = 'myapp: bad login from (?P<ip>\\S+) user (?P<acc>\\S+)'
reason = "Failed myapp login from"
trigger = "LF_MYAPP"
""")
        rules = load_custom_rules(path)
        self.assertEqual(len(rules), 1)

        cls = Classifier(cfg=Config(), custom=rules)
        line: Final[str] = "Jan 10 12:00:00 myhost myapp: bad login from 203.0.113.10 user carol"
        self.assertIsNone(cls.classify(line, "/var/log/myapp.log", {}))
        ev = cls.classify(line, "/var/log/myapp.log", {"CUSTOM1_LOG": ["/var/log/myapp.log"]})
        assert ev is not None
        self.assertEqual(ev.account, "carol")
        self.assertEqual(ev.trigger, "LF_MYAPP")


class TestExtractors(unittest.TestCase):
    """Test the narrower extractors."""

    @classmethod
    def setUpClass(cls) -> None:
        """Prepare the testing environment."""
        common.set_basedir(test_dir)

    @classmethod
    def tearDownClass(cls) -> None:
        """Clean up afterwards."""
        shutil.rmtree(test_dir, ignore_errors=True)

    def test_01_port_scan(self) -> None:
        """Test recognizing packets dropped by the firewall."""
        cls = _classifier()
        snap: Final[NetSnapshot] = NetSnapshot(ipv4=frozenset({"10.0.0.1"}),
                                               broadcast=frozenset({"255.255.255.255",
                                                                    "10.0.0.255"}))
        tcp: Final[str] = FW + "*TCP_IN Blocked* IN=eth0 OUT= MAC=00:11 SRC=8.8.4.4 DST=10.0.0.1 " + \
            "LEN=40 TOS=0x00 PREC=0x00 TTL=50 ID=0 PROTO=TCP SPT=1234 DPT={port} WINDOW=0"

        hit = cls.port_scan(tcp.format(port=23), snap)
        self.assertIsNotNone(hit)
        assert hit is not None
        self.assertEqual(hit.address.text, "8.8.4.4")
        self.assertEqual(hit.port, "23")

        # Port 22 is open in TCP_IN, so that is not a scan.
        self.assertIsNone(cls.port_scan(tcp.format(port=22), snap))

        brd: Final[str] = FW + "*UDP_IN Blocked* IN=eth0 OUT= MAC=00:11 SRC=8.8.4.4 " + \
            "DST=10.0.0.255 LEN=78 PROTO=UDP SPT=137 DPT=137 LEN=58"
        self.assertIsNone(cls.port_scan(brd, snap))

        icmp: Final[str] = FW + "*ICMP_IN Blocked* IN=eth0 OUT= MAC=00:11 SRC=8.8.4.4 " + \
            "DST=10.0.0.1 LEN=84 PROTO=ICMP TYPE=8 CODE=0"
        hit = cls.port_scan(icmp, snap)
        assert hit is not None
        self.assertEqual(hit.port, "ICMP")

        self.assertIsNone(cls.port_scan(SSH_FAIL, snap))

    def test_02_su(self) -> None:
        """Test recognizing su sessions."""
        cls = _classifier()
        ev = cls.su_event(SYSLOG + "su[321]: pam_unix(su:session): session opened for user root by alice(uid=1000)")
        self.assertIsNotNone(ev)
        assert ev is not None
        self.assertEqual(ev.to_user, "root")
        self.assertEqual(ev.from_user, "alice(uid=1000)")
        self.assertEqual(ev.outcome, OK)

        ev = cls.privilege_event(
            SYSLOG + "su[322]: pam_unix(su:auth): authentication failure; logname=alice uid=1000 " +
            "euid=0 tty=pts/0 ruser=alice rhost=  user=root")
        assert ev is not None
        self.assertEqual(ev.from_user, "alice")
        self.assertEqual(ev.to_user, "root")
        self.assertEqual(ev.outcome, FAIL)

    def test_03_sudo(self) -> None:
        """Test recognizing sudo commands."""
        line: Final[str] = SYSLOG + \
            "sudo:    alice : TTY=pts/0 ; PWD=/home/alice ; USER=root ; COMMAND=/bin/ls"
        self.assertIsNone(_classifier().sudo_event(line))

        ev = _classifier(LF_SUDO_EMAIL_ALERT=1).privilege_event(line)
        self.assertIsNotNone(ev)
        assert ev is not None
        self.assertEqual(ev.from_user, "alice")
        self.assertEqual(ev.to_user, "root")
        self.assertEqual(ev.outcome, OK)

    def test_04_ssh_login(self) -> None:
        """Test recognizing successful SSH logins."""
        line: Final[str] = SYSLOG + \
            "sshd[99]: Accepted publickey for alice from 203.0.113.5 port 5555 ssh2"
        login = _classifier().ssh_login(line)
        self.assertIsNotNone(login)
        assert login is not None
        self.assertEqual(login.account, "alice")
        self.assertEqual(login.method, "publickey")
        self.assertEqual(login.address.text, "203.0.113.5")

        self.assertIsNone(_classifier(LF_SSH_EMAIL_ALERT=0).ssh_login(line))

    def test_05_relay(self) -> None:
        """Test labelling messages accepted by Exim."""
        prefix: Final[str] = "2026-01-10 12:00:00 1abcde-000001-AB <= alice@example.com "
        test_cases: Final[list[tuple[str, Optional[tuple[str, str]]]]] = [
            ("H=mail.example.com [203.0.113.6] P=esmtpsa X=TLS1.3 " +
             "A=dovecot_login:alice@example.com S=1234",
             ("203.0.113.6", "AUTHRELAY")),
            ("H=(helo) [203.0.113.6] P=esmtp S=100", ("203.0.113.6", "RELAY")),
            ("U=alice P=local S=100", ("alice", "LOCALRELAY")),
            ("H=localhost [127.0.0.1] P=esmtp S=100", ("127.0.0.1", "RELAY")),
        ]

        cls = _classifier()
        for tail, expected in test_cases:
            with self.subTest(tail=tail):
                ev = cls.relay_check(prefix + tail)
                if expected is None:
                    self.assertIsNone(ev)
                else:
                    assert ev is not None
                    self.assertEqual((ev.source, ev.kind), expected)

        self.assertIsNone(cls.relay_check(SSH_FAIL))

    def test_06_apache(self) -> None:
        """Test the Apache 404 extractor."""
        line: Final[str] = "[Sat Jan 10 12:00:00.123456 2026] [core:info] [pid 1234] " + \
            "[client 203.0.113.11:40000] AH00128: File does not exist: /var/www/html/wp-login.php"
        addr = _classifier().apache_404(line)
        self.assertIsNotNone(addr)
        assert addr is not None
        self.assertEqual(addr.text, "203.0.113.11")

    def test_07_stats_and_syslog(self) -> None:
        """Test the static helpers."""
        self.assertTrue(Classifier.is_stats_line(FW + "*TCP_IN Blocked* IN=eth0"))
        self.assertFalse(Classifier.is_stats_line(SSH_FAIL))
        line: Final[str] = SYSLOG + "pywarden[777]: SYSLOG check [abc123]"
        self.assertTrue(Classifier.syslog_check(line, "abc123"))
        self.assertFalse(Classifier.syslog_check(line, "xyz"))

# Local Variables: #
# python-indent: 4 #
# End: #
