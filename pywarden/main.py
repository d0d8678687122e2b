#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Time-stamp: <2026-02-15 11:32:47 krylon>
#
# /data/code/python/pywarden/main.py
# created on 05. 01. 2026
# (c) 2026 Benjamin Walkenhorst
#
# This file is part of the PyWarden intrusion prevention toolkit. It is distributed under the
# terms of the GNU General Public License 3. See the file LICENSE for details
# or find a copy online at https://www.gnu.org/licenses/gpl-3.0

"""
pywarden.main

(c) 2026 Benjamin Walkenhorst
"""


import argparse
import pathlib
import sys
from typing import Final, Optional, TextIO

from pywarden import checkip, common
from pywarden.config import Config, ConfigError, port_set
from pywarden.enrich import Enricher, LookupMode
from pywarden.killer import Killer
from pywarden.model import Address
from pywarden.netinfo import NetSnapshot
from pywarden.pipeline import Pipeline
from pywarden.rbl import RBLChecker
from pywarden.rules import builtin_rules


def _log_sets(names: list[str], source: str) -> dict[str, set[str]]:
    # Without explicit log sets, a file counts as part of all of them.
    if not names:
        names = sorted({r.logs for r in builtin_rules if r.logs != ""})
    return {name: {source} for name in names}


def _classify(cfg: Config, args: argparse.Namespace) -> int:
    pipe: Final[Pipeline] = Pipeline.from_config(cfg, args.rules)
    hits: int = 0

    for name in args.files or ["-"]:
        fh: TextIO
        if name == "-":
            fh = sys.stdin
        else:
            try:
                fh = open(name, "r", encoding="utf-8", errors="replace")  # pylint: disable-msg=R1732
            except OSError as err:
                print(f"Cannot open {name}: {err}", file=sys.stderr)
                return 1

        source: str = args.source or name
        sets: dict[str, set[str]] = _log_sets(args.log_set, source)
        try:
            for line in fh:
                if args.ban:
                    ev = pipe.process(line, source, sets)
                else:
                    ev = pipe.classifier.classify(line, source, sets)
                if ev is None:
                    continue
                hits += 1
                print(f"{ev.app.value}\t{ev.address}\t{ev.account or '-'}\t{ev.reason}")
        finally:
            if fh is not sys.stdin:
                fh.close()

    return 0 if hits > 0 else 1


def _check(_cfg: Config, args: argparse.Namespace) -> int:
    status: int = 0
    for text in args.addresses:
        addr = checkip.validate(text, args.public)
        if addr is None:
            print(f"{text}\tinvalid")
            status = 1
        else:
            print(f"{text}\t{addr}\tIPv{addr.version}\t{addr.kind.name}")
    return status


def _lookup(cfg: Config, args: argparse.Namespace) -> int:
    enricher: Final[Enricher] = Enricher.from_config(cfg)
    mode: Final[LookupMode] = LookupMode.Full if args.rbl else LookupMode.Geo
    addrs = []
    for text in args.addresses:
        addr = checkip.validate(text)
        if addr is None:
            print(f"Invalid address: {text}", file=sys.stderr)
            return 1
        addrs.append(addr)

    for rec in enricher.enrich_all(addrs, mode):
        print(enricher.summary(rec))
        for res in rec.rbl:
            print(f"    {res.zone}: {res.status.name} {' '.join(res.explanations)}")
    return 0


def _rbl(cfg: Config, args: argparse.Namespace) -> int:
    checker: Final[RBLChecker] = RBLChecker.from_config(cfg)
    local: list[str] = args.addresses
    if not local:
        snap: Final[NetSnapshot] = NetSnapshot.probe(cfg)
        local = sorted(snap.ipv4 | snap.ipv6)
    failures, lines = checker.report(checker.zones.addresses(local), args.verbose)
    for line in lines:
        print(line)
    return 0 if failures == 0 else 2


def _kill(cfg: Config, args: argparse.Namespace) -> int:
    try:
        ports = port_set(args.ports or cfg.string("PORTS_sshd"))
    except ConfigError as err:
        print(f"Invalid port list: {err}", file=sys.stderr)
        return 1
    addr: Final[Optional[Address]] = checkip.validate(checkip.strip_mapped(args.address))
    if addr is None:
        print(f"Invalid address: {args.address}", file=sys.stderr)
        return 1
    killer = Killer(proc_root=args.proc,
                    audit=common.get_audit_logger(cfg.flag("SYSLOG")))
    killer.terminate_sessions(addr, ports)
    return 0


def main() -> None:
    """Parse the command line and run the selected command."""
    argp: argparse.ArgumentParser = argparse.ArgumentParser(prog="pywarden")
    argp.add_argument("-b", "--basedir",
                      type=pathlib.Path,
                      default=common.path.base(),
                      help="Directory to store application data in")
    argp.add_argument("-c", "--config",
                      type=pathlib.Path,
                      help="The configuration file to use")

    cmds = argp.add_subparsers(dest="command", required=True)

    cls_cmd = cmds.add_parser("classify", help="Classify log lines")
    cls_cmd.add_argument("files", nargs="*", help="Log files to read, - for stdin")
    cls_cmd.add_argument("-s", "--source",
                         help="The log file name to match rules against")
    cls_cmd.add_argument("-l", "--log-set",
                         action="append",
                         default=[],
                         help="A log set (e.g. SSHD_LOG) the files belong to")
    cls_cmd.add_argument("-r", "--rules",
                         type=pathlib.Path,
                         help="A TOML file with custom rules")
    cls_cmd.add_argument("--ban",
                         action="store_true",
                         help="Count failures and ban offending addresses")
    cls_cmd.set_defaults(func=_classify)

    check_cmd = cmds.add_parser("check", help="Validate addresses")
    check_cmd.add_argument("addresses", nargs="+")
    check_cmd.add_argument("-p", "--public",
                           action="store_true",
                           help="Only accept public addresses")
    check_cmd.set_defaults(func=_check)

    lookup_cmd = cmds.add_parser("lookup", help="Look up what we know about addresses")
    lookup_cmd.add_argument("addresses", nargs="+")
    lookup_cmd.add_argument("--rbl",
                            action="store_true",
                            help="Query the RBLs as well")
    lookup_cmd.set_defaults(func=_lookup)

    rbl_cmd = cmds.add_parser("rbl", help="Check the local addresses against the RBLs")
    rbl_cmd.add_argument("addresses",
                         nargs="*",
                         help="Addresses to check instead of the local ones")
    rbl_cmd.add_argument("-v", "--verbose",
                         action="count",
                         default=0,
                         help="Query uncached addresses, twice to report everything")
    rbl_cmd.set_defaults(func=_rbl)

    kill_cmd = cmds.add_parser("kill", help="Terminate the sessions of an address")
    kill_cmd.add_argument("address")
    kill_cmd.add_argument("-p", "--ports",
                          help="Ports to look at, PORTS_sshd by default")
    kill_cmd.add_argument("--proc",
                          default="/proc",
                          help="Where the proc filesystem is mounted")
    kill_cmd.set_defaults(func=_kill)

    args = argp.parse_args()
    common.set_basedir(args.basedir)

    try:
        cfg = Config.load(args.config)
    except ConfigError as err:
        print(err, file=sys.stderr)
        sys.exit(1)

    try:
        sys.exit(args.func(cfg, args))
    except KeyboardInterrupt:
        print("Interrupted.")
        sys.exit(130)


if __name__ == '__main__':
    main()

# Local Variables: #
# python-indent: 4 #
# End: #
