"""Run a small set of administrative commands as root.

Members of the abuild group may call adduser, addgroup, apk and
abuild-rmtemp through links named ``abuild-<command>``.
"""

from __future__ import annotations

import grp
import os
import pwd
import sys
from typing import Sequence

PROGRAM = "abuild-sudo"
ABUILD_GROUP = "abuild"

VALID_COMMANDS = (
    "/bin/adduser",
    "/usr/sbin/adduser",
    "/bin/addgroup",
    "/usr/sbin/addgroup",
    "/sbin/apk",
    "/usr/bin/abuild-rmtemp",
)

INVALID_OPTIONS = frozenset({"--allow-untrusted", "--keys-dir"})


class SudoError(Exception):
    """Raised when a command may not be run."""


def get_command_path(cmd: str) -> str | None:
    """Return the first installed allowed command named *cmd*, if any."""
    for path in VALID_COMMANDS:
        if os.access(path, os.F_OK) and path.rsplit("/", 1)[1] == cmd:
            return path
    return None


def check_option(opt: str) -> None:
    """Raise :class:`SudoError` if *opt* is a forbidden option."""
    if opt in INVALID_OPTIONS:
        raise SudoError(f"{opt}: not allowed option")


def is_in_group(gid: int) -> bool:
    """Tell whether *gid* is among the supplementary groups of this process."""
    return gid in os.getgroups()


def subcommand_from_argv0(argv0: str) -> str:
    """Return the part of the program name after its first '-'."""
    base = argv0.rsplit("/", 1)[-1]
    _, sep, cmd = base.partition("-")
    if not sep:
        raise SudoError("Calling command has no '-'")
    return cmd


def _prepare(argv: Sequence[str]) -> str:
    try:
        group = grp.getgrnam(ABUILD_GROUP)
    except KeyError:
        raise SudoError(f"{ABUILD_GROUP}: Group not found") from None

    uid = os.getuid()
    try:
        name: str | None = pwd.getpwuid(uid).pw_name
    except KeyError:
        name = None

    if uid != 0 and not is_in_group(group.gr_gid):
        raise SudoError(
            f"User {name or '(unknown)'} is not a member of group {ABUILD_GROUP}"
        )
    if name is None:
        print(f"{PROGRAM}: Could not find username for uid {uid}", file=sys.stderr)
    os.environ["USER"] = name or ""

    cmd = subcommand_from_argv0(argv[0])
    path = get_command_path(cmd)
    if path is None:
        raise SudoError(f"{cmd}: Not a valid subcommand")
    for opt in argv[1:]:
        check_option(opt)
    return path


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point.

    *argv* includes the program name, which selects the command to run.
    """
    args = list(sys.argv if argv is None else argv)
    if not args:
        print(f"{PROGRAM}: Calling command has no '-'", file=sys.stderr)
        return 1
    try:
        path = _prepare(args)
    except SudoError as exc:
        print(f"{PROGRAM}: {exc}", file=sys.stderr)
        return 1

    try:
        # root uid so that bbsuid --install works
        os.setuid(0)
    except OSError as exc:
        print(f"{PROGRAM}: setuid(0) failed: {exc.strerror}", file=sys.stderr)
        return 1
    try:
        # root gid so apk commit hooks run as they would under sudo
        os.setgid(0)
    except OSError as exc:
        print(f"{PROGRAM}: setgid(0) failed: {exc.strerror}", file=sys.stderr)
        return 1
    try:
        os.execv(path, [path, *args[1:]])
    except OSError as exc:
        print(f"{path}: {exc.strerror}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())