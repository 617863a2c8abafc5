"""Split an APK package into its signature, control and data sections.

A package is a concatenation of gzip streams. Each stream is written,
compressed as it came in, to a file chosen by the name of the first entry
of the tar archive inside it.
"""

from __future__ import annotations

import os
import sys
import zlib
from pathlib import Path
from typing import BinaryIO, Sequence

SIGNATURES = "signatures.tar.gz"
CONTROL = "control.tar.gz"
DATA = "data.tar.gz"

_CHUNK = 8 * 1024
_HEAD_SIZE = 512
_GZIP_WBITS = 15 + 32


class GzsplitError(Exception):
    """Raised when the package cannot be split."""

    def __init__(self, message: str, exit_code: int = 1) -> None:
        super().__init__(message)
        self.exit_code = exit_code


def find_section(data: bytes, name: str | bytes) -> bool:
    """Tell whether the tar entry name at the start of *data* begins with *name*.

    Only the part of the entry name after its last '/' is compared.
    """
    needle = name.encode() if isinstance(name, str) else name
    if len(needle) >= len(data):
        return False
    entry = bytes(data).split(b"\0", 1)[0]
    return entry.rsplit(b"/", 1)[-1].startswith(needle)


def _open_output(path: Path, exit_code: int) -> BinaryIO:
    try:
        fd = os.open(path, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, 0o777)
    except OSError as exc:
        raise GzsplitError(f"Failed to open {path.name}: {exc}", exit_code) from exc
    return os.fdopen(fd, "wb")


def split(instream: BinaryIO, outdir: str | os.PathLike = ".") -> list[Path]:
    """Split concatenated gzip streams from *instream* into files in *outdir*.

    Returns the paths written, in order.
    """
    outdir = Path(outdir)
    written: list[Path] = []
    data_seen = False
    decompressor = zlib.decompressobj(_GZIP_WBITS)
    pending = bytearray()
    head = bytearray()
    out: BinaryIO | None = None
    member_done = False
    buf = b""

    def error(message: str) -> GzsplitError:
        return GzsplitError(message, 2 if data_seen else 1)

    try:
        while True:
            if not buf:
                buf = instream.read(_CHUNK)
                if not buf:
                    if member_done:
                        return written
                    raise error("Failed to inflate input: unexpected end of input")

            try:
                output = decompressor.decompress(buf)
            except zlib.error as exc:
                raise error(f"Failed to inflate input: {exc}") from exc
            member_done = False

            if decompressor.eof:
                rest = decompressor.unused_data
                pending += buf[:len(buf) - len(rest)]
                buf = rest
            else:
                pending += buf
                buf = b""

            if out is None:
                head += output
                if len(head) >= _HEAD_SIZE or (decompressor.eof and head):
                    if find_section(head, ".SIGN."):
                        target = SIGNATURES
                    elif find_section(head, ".PKGINFO"):
                        target = CONTROL
                    elif not data_seen:
                        target = DATA
                        data_seen = True
                    else:
                        raise error("Failed to find .PKGINFO section")
                    path = outdir / target
                    out = _open_output(path, 2 if data_seen else 1)
                    written.append(path)

            if out is not None and pending:
                try:
                    out.write(pending)
                except OSError as exc:
                    raise error(f"Failed to write to {written[-1].name}: {exc}") from exc
                pending.clear()

            if decompressor.eof:
                if out is None:
                    raise error("Failed to write: compressed section is empty")
                out.close()
                out = None
                decompressor = zlib.decompressobj(_GZIP_WBITS)
                head.clear()
                member_done = True
    finally:
        if out is not None:
            out.close()


def main(argv: Sequence[str] | None = None) -> int:
    """Split the package on standard input into the current directory."""
    try:
        split(sys.stdin.buffer, ".")
    except GzsplitError as exc:
        print(f"abuild-gzsplit: {exc}", file=sys.stderr)
        return exc.exit_code
    except OSError as exc:
        print(f"abuild-gzsplit: Failed to read input: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())