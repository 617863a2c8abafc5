"""Remove a temporary abuild directory owned by the calling user."""

from __future__ import annotations

import os
import pwd
import stat
import sys
from typing import Sequence

PREFIX = "/var/tmp/abuild."
SUDO_PATH = "/usr/bin/abuild-sudo"
PROGRAM = "abuild-rmtemp"


class RmtempError(Exception):
    """Raised when the path may not or could not be removed."""


def validate_path(path: str) -> str:
    """Return *path* if it names an entry directly below the abuild prefix."""
    if not path.startswith(PREFIX) or "/" in path[len(PREFIX):]:
        raise RmtempError(f"Invalid path: {path}")
    return path


def _remove_tree(path: str, mode: int) -> None:
    """Remove *path* depth first, never following symbolic links."""
    if stat.S_ISDIR(mode):
        with os.scandir(path) as entries:
            children = [(entry.path, entry.stat(follow_symlinks=False).st_mode) for entry in entries]
        for child_path, child_mode in children:
            _remove_tree(child_path, child_mode)
        os.rmdir(path)
    else:
        os.remove(path)


def remove_temp(path: str | os.PathLike, user: str | None) -> None:
    """Remove *path* and everything below it if *user* owns it.

    Symbolic links are removed, never followed.
    """
    path = os.fspath(path)
    try:
        info = os.lstat(path)
    except OSError as exc:
        raise RmtempError(exc.strerror) from exc
    if user is None:
        raise RmtempError("Incorrect user")
    try:
        owner = pwd.getpwnam(user)
    except KeyError:
        raise RmtempError("Incorrect user") from None
    if info.st_uid != owner.pw_uid:
        raise RmtempError("Permission denied")
    try:
        _remove_tree(path, info.st_mode)
    except OSError as exc:
        raise RmtempError(exc.strerror) from exc


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point; *argv* excludes the program name."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        return 0
    if os.getuid() != 0:
        try:
            os.execv(SUDO_PATH, ["-" + PROGRAM, *args])
        except OSError:
            pass
    try:
        remove_temp(validate_path(args[0]), os.environ.get("USER"))
    except RmtempError as exc:
        print(f"{PROGRAM}: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())