#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-15 17:20:55 krylon>
#
# /data/code/python/pywarden/test_killer.py
# created on 21. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.test_killer

(c) 2026 Benjamin Walkenhorst
"""

import os
import shutil
import signal
import unittest
from datetime import datetime
from ipaddress import IPv4Address
from typing import Final
from unittest import mock

from pywarden import checkip, common
from pywarden.killer import Killer
from pywarden.model import TCPState
from pywarden.test_procnet import FakeProc

test_dir: Final[str] = os.path.join(
    "/tmp",
    datetime.now().strftime(f"{common.AppName.lower()}_test_killer_%Y%m%d_%H%M%S"))

TARGET: Final[str] = "203.0.113.50"


class TestKiller(unittest.TestCase):
    """Test terminating the sessions of a blocked address."""

    proc: str

    @classmethod
    def setUpClass(cls) -> None:
        """Prepare the testing environment."""
        common.set_basedir(test_dir)
        cls.proc = os.path.join(test_dir, "proc")
        fp = FakeProc(cls.proc)
        est: Final[TCPState] = TCPState.ESTABLISHED
        fp.socket("tcp", ("10.0.0.1", 22), (TARGET, 50000), est, 1001)
        fp.socket("tcp", ("10.0.0.1", 22), ("198.51.100.7", 50001), est, 1002)
        fp.socket("tcp", ("10.0.0.1", 22), (TARGET, 50002), est, 1003)
        fp.socket("tcp", ("10.0.0.1", 8080), (TARGET, 50003), est, 1004)
        fp.socket("tcp", ("0.0.0.1", 22), (TARGET, 50004), est, 1006)
        fp.socket("tcp6", ("::ffff:10.0.0.1", 22), (f"::ffff:{TARGET}", 50005), est, 1005)
        fp.write()

        fp.process(100, "/usr/sbin/sshd", [1001])
        fp.process(101, "/usr/sbin/sshd", [1002])
        fp.process(102, "/usr/bin/python3", [1003])
        fp.process(103, "/usr/sbin/sshd", [1004])
        fp.process(104, "/usr/sbin/sshd", [1005])
        fp.process(106, "/usr/sbin/sshd", [1006])

    @classmethod
    def tearDownClass(cls) -> None:
        """Clean up afterwards."""
        shutil.rmtree(test_dir, ignore_errors=True)

    def _killer(self) -> Killer:
        return Killer(proc_root=self.proc,
                      kill=mock.MagicMock(),
                      audit=mock.MagicMock())

    def test_01_find_inodes(self) -> None:
        """Test finding the sockets of the target address."""
        k = self._killer()
        self.assertEqual(k.find_inodes(IPv4Address(TARGET), {22}), {1001, 1003, 1005})
        self.assertEqual(k.find_inodes(IPv4Address(TARGET), {22, 8080}), {1001, 1003, 1004, 1005})
        self.assertEqual(k.find_inodes(IPv4Address("192.0.2.99"), {22}), set())

    def test_02_terminate(self) -> None:
        """Test that only the sshd processes serving the target are killed."""
        k = self._killer()
        k.terminate_sessions(TARGET, {22})

        k.kill.assert_has_calls([mock.call(100, signal.SIGKILL),
                                 mock.call(104, signal.SIGKILL)],
                                any_order=True)
        self.assertEqual(k.kill.call_count, 2)
        self.assertEqual(k.audit.warning.call_count, 2)
        fmt, pid, host = k.audit.warning.call_args_list[0].args
        self.assertEqual(fmt, "*PT_SSHDKILL*: Process PID:[%d] killed for blocked IP:[%s]")
        self.assertIn(pid, (100, 104))
        self.assertEqual(host, TARGET)

    def test_03_address_object(self) -> None:
        """Test passing a validated Address."""
        addr = checkip.validate(TARGET)
        assert addr is not None
        k = self._killer()
        k.terminate_sessions(addr, {8080})
        k.kill.assert_called_once_with(103, signal.SIGKILL)

    def test_04_noop(self) -> None:
        """Test the cases where nothing is killed."""
        k = self._killer()
        k.terminate_sessions(TARGET, set())
        k.terminate_sessions("not-an-address", {22})
        k.terminate_sessions("192.0.2.99", {22})
        k.kill.assert_not_called()
        k.audit.warning.assert_not_called()

    def test_05_vanished(self) -> None:
        """Test that a process that is already gone is not reported as killed."""
        k = self._killer()
        k.kill.side_effect = ProcessLookupError(3, "No such process")
        k.terminate_sessions(TARGET, {22})
        self.assertEqual(k.kill.call_count, 2)
        k.audit.warning.assert_not_called()

# Local Variables: #
# python-indent: 4 #
# End: #
