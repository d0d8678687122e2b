#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-01-18 14:02:11 krylon>
#
# /data/code/python/pywarden/__init__.py
# created on 18. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.__init__

(c) 2026 Benjamin Walkenhorst

PyWarden turns service log lines into bans, finds out what it can about the
offending addresses and terminates their running sessions.
"""

# Local Variables: #
# python-indent: 4 #
# End: #
