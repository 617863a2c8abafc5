"""Download a source file into a shared cache directory.

Concurrent downloads of the same file are serialised with a lock file next to
the target. The download is done with curl, falling back to wget when curl
cannot be started, and only a completed download is moved into place.

Exit codes of curl or wget are passed through; in addition 200 means the
download program could not be run, 201 that it could not be started, 202 that
it did not terminate normally and 203 that usage was displayed.
"""

from __future__ import annotations

import contextlib
import errno
import fcntl
import getopt
import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass
from typing import Sequence

PROGRAM = "abuild-fetch"
DEFAULT_DESTDIR = "/var/cache/distfiles"

EXIT_FORK_FAILED = 200
EXIT_EXEC_FAILED = 201
EXIT_ABNORMAL = 202
EXIT_USAGE = 203
CURL_RANGE_ERROR = 33

_LOCK_ATTEMPTS = 10
_HANDLED_SIGNALS = (signal.SIGABRT, signal.SIGINT, signal.SIGQUIT, signal.SIGTERM)
_USAGE = f"usage: {PROGRAM} [-hk] [-d DESTDIR] URL"


class FetchError(Exception):
    """Raised when a download cannot be set up."""


@dataclass(frozen=True)
class FetchTarget:
    """Where a URL is downloaded to."""

    url: str
    outfile: str

    @property
    def lockfile(self) -> str:
        return self.outfile + ".lock"

    @property
    def partfile(self) -> str:
        return self.outfile + ".part"


@dataclass
class _ActiveLock:
    path: str | None = None


_active_lock = _ActiveLock()


def resolve_target(url: str, destdir: str | os.PathLike) -> FetchTarget:
    """Work out the real URL and output file for *url*.

    A URL of the form ``name::url`` is saved under ``name``; otherwise the
    part after the last '/' names the file.
    """
    if "/" not in url:
        raise FetchError(f"{url}: no '/' in url")
    name, sep, real_url = url.partition("::")
    if not sep:
        name = url.rsplit("/", 1)[1]
        real_url = url
    return FetchTarget(url=real_url, outfile=f"{os.fspath(destdir)}/{name}")


def build_commands(
    partfile: str, url: str, insecure: bool, resume: bool
) -> tuple[list[str], list[str]]:
    """Return the curl and wget command lines for a download."""
    curl = ["curl", "-L", "-f", "-o", partfile]
    wget = ["wget", "-O", partfile]
    # plain http may redirect to https, so do not insist on certificates
    if insecure or url.startswith("http://"):
        curl.append("--insecure")
        wget.append("--no-check-certificate")
    if resume:
        curl += ["--continue-at", "-"]
        wget.append("-c")
    curl.append(url)
    wget.append(url)
    return curl, wget


def _acquire_lock(lockfile: str) -> int:
    for attempt in range(_LOCK_ATTEMPTS):
        if attempt:
            time.sleep(1)
        try:
            fd = os.open(lockfile, os.O_WRONLY | os.O_CREAT, 0o660)
        except OSError as exc:
            raise FetchError(f"{lockfile}: {exc.strerror}") from exc
        try:
            fcntl.lockf(fd, fcntl.LOCK_EX)
        except OSError as exc:
            os.close(fd)
            # NFS may report a stale handle; try again with a fresh one
            if exc.errno == errno.ESTALE:
                continue
            raise FetchError(f"failed to acquire lock: {lockfile}: {exc.strerror}") from exc
        return fd
    raise FetchError(f"failed to acquire lock: {lockfile}")


def _try_lock(fd: int) -> bool:
    try:
        fcntl.lockf(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        return False
    return True


def _run(argv: list[str], showerr: bool) -> int:
    try:
        returncode = subprocess.run(argv, check=False).returncode
    except OSError as exc:
        if showerr:
            print(f"{PROGRAM}: {argv[0]}: {exc.strerror}", file=sys.stderr)
        return EXIT_EXEC_FAILED
    if returncode < 0:
        return EXIT_ABNORMAL
    return returncode


def _download(target: FetchTarget, insecure: bool) -> int:
    resume = os.path.exists(target.partfile)
    if resume:
        print("Partial download found. Trying to resume.", flush=True)
    curl, wget = build_commands(target.partfile, target.url, insecure, resume)

    status = _run(curl, False)
    if status == CURL_RANGE_ERROR:
        # the server does not accept range requests: start over
        with contextlib.suppress(FileNotFoundError):
            os.unlink(target.partfile)
        curl, _ = build_commands(target.partfile, target.url, insecure, False)
        status = _run(curl, False)

    if status == EXIT_EXEC_FAILED:
        status = _run(wget, True)

    if status == 0:
        with contextlib.suppress(OSError):
            os.rename(target.partfile, target.outfile)
    return status


def fetch(url: str, destdir: str | os.PathLike = DEFAULT_DESTDIR, insecure: bool = False) -> int:
    """Download *url* into *destdir* unless it is already there.

    Returns 0 on success, otherwise the exit status of the download program
    or one of the extra codes described in this module.
    """
    target = resolve_target(url, destdir)
    _active_lock.path = target.lockfile
    fd = _acquire_lock(target.lockfile)
    status = 0
    try:
        if not os.path.exists(target.outfile):
            status = _download(target, insecure)
    finally:
        try:
            fcntl.lockf(fd, fcntl.LOCK_UN)
        except OSError as exc:
            os.close(fd)
            raise FetchError(f"failed to release lock: {exc.strerror}") from exc
        # give processes waiting on the lock a chance to take it
        time.sleep(0.001)
        if status == 0 or _try_lock(fd):
            with contextlib.suppress(FileNotFoundError):
                os.unlink(target.lockfile)
        os.close(fd)
        _active_lock.path = None
    return status


def _on_signal(signum, frame) -> None:
    if _active_lock.path is not None:
        with contextlib.suppress(OSError):
            os.unlink(_active_lock.path)
    raise SystemExit(0)


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point."""
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        opts, rest = getopt.getopt(args, "hd:k")
    except getopt.GetoptError as exc:
        print(f"Unknown option '{exc.opt}'")
        print(_USAGE)
        return 1

    destdir = DEFAULT_DESTDIR
    insecure = False
    for opt, value in opts:
        if opt == "-h":
            print(_USAGE)
            return 0
        if opt == "-d":
            destdir = value
        elif opt == "-k":
            insecure = True

    if len(rest) != 1:
        print(_USAGE)
        return EXIT_USAGE

    previous = {signum: signal.signal(signum, _on_signal) for signum in _HANDLED_SIGNALS}
    try:
        return fetch(rest[0], destdir, insecure)
    except FetchError as exc:
        print(f"{PROGRAM}: {exc}", file=sys.stderr)
        return 1
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


if __name__ == "__main__":
    sys.exit(main())