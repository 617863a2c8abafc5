"""Rewrite tar streams for APK packages.

Regular files, hard links and symbolic links can be given a pax extended
header holding a checksum of their contents, and the end-of-archive record
can be cut off so that several archives can be concatenated.
"""

from __future__ import annotations

import hashlib
import sys
from typing import BinaryIO, Sequence, TextIO

BLOCK_SIZE = 512
CHECKSUM_PREFIX = "APK-TOOLS.checksum."

_SIZE = slice(124, 136)
_CHKSUM = slice(148, 156)
_TYPEFLAG = 156
_LINKNAME = slice(157, 257)
_PAX_TYPE = ord("x")
_SYMLINK_TYPE = ord("2")
_HASHED_TYPES = frozenset(b"072")
_COPY_CHUNK = 64 * 1024
_LONG_OPTIONS = ("hash", "help", "cut")


class TarStreamError(Exception):
    """Raised when the input is not a complete tar stream."""


def get_octal(field: bytes) -> int:
    """Parse the leading octal digits of a header field."""
    value = 0
    for ch in field:
        if not 0x30 <= ch <= 0x37:
            break
        value = value * 8 + (ch - 0x30)
    return value


def put_octal(value: int, length: int) -> bytes:
    """Format *value* as a NUL-terminated, zero-padded octal field.

    Digits that do not fit into the field are dropped from the left.
    """
    if length < 1:
        raise ValueError("field length must be at least 1")
    field = bytearray(b"0" * (length - 1) + b"\0")
    pos = length - 2
    while value and pos >= 0:
        field[pos] = 0x30 + value % 8
        value //= 8
        pos -= 1
    return bytes(field)


def header_checksum(header: bytes) -> bytes:
    """Return *header* with its checksum field recalculated."""
    if len(header) != BLOCK_SIZE:
        raise ValueError(f"a tar header is {BLOCK_SIZE} bytes, got {len(header)}")
    block = bytearray(header)
    block[_CHKSUM] = b" " * 8
    block[_CHKSUM.start:_CHKSUM.stop - 1] = put_octal(sum(block), 7)
    return bytes(block)


def pax_hexdump_record(key: str | bytes, digest: bytes) -> bytes:
    """Build a pax record "<len> <key>=<hex digest>\\n"."""
    key_bytes = key.encode() if isinstance(key, str) else key
    length = 1 + 1 + len(key_bytes) + 1 + len(digest) * 2 + 1
    scale = length
    while scale > 9:
        length += 1
        scale //= 10
    return b"%d %s=%s\n" % (length, key_bytes, digest.hex().encode())


def _resolve_algorithm(algorithm: str) -> tuple[str, str]:
    try:
        name = hashlib.new(algorithm).name
    except (ValueError, TypeError):
        raise ValueError(f"unknown digest algorithm: {algorithm}") from None
    return name, CHECKSUM_PREFIX + name.upper().replace("_", "-")


def _align(size: int) -> int:
    return (size + BLOCK_SIZE - 1) & ~(BLOCK_SIZE - 1)


def _read_exact(stream: BinaryIO, count: int) -> bytes:
    chunks = []
    remaining = count
    while remaining:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _read_data(stream: BinaryIO, count: int) -> bytes:
    data = _read_exact(stream, count)
    if len(data) != count:
        raise TarStreamError("unexpected end of input inside entry data")
    return data


def _copy(instream: BinaryIO, outstream: BinaryIO, count: int) -> None:
    remaining = count
    while remaining:
        chunk = instream.read(min(remaining, _COPY_CHUNK))
        if not chunk:
            raise TarStreamError("unexpected end of input inside entry data")
        outstream.write(chunk)
        remaining -= len(chunk)


def process(
    instream: BinaryIO,
    outstream: BinaryIO,
    algorithm: str | None = None,
    cut: bool = False,
) -> None:
    """Copy a tar stream, adding checksum pax records and optionally cutting it.

    With *cut*, copying stops at the first header whose name is empty and
    returns normally. Otherwise the stream is expected to go on and reaching
    its end raises :class:`TarStreamError`, as does any truncated entry.
    """
    hash_name = checksum_key = ""
    if algorithm is not None:
        hash_name, checksum_key = _resolve_algorithm(algorithm)

    pax_header = bytes(BLOCK_SIZE)
    pax = b""
    while True:
        header = _read_exact(instream, BLOCK_SIZE)
        if len(header) != BLOCK_SIZE:
            raise TarStreamError("unexpected end of input while reading a header")
        if cut and header[0] == 0:
            return

        size = get_octal(header[_SIZE])
        aligned = _align(size)
        typeflag = header[_TYPEFLAG]

        if typeflag == _PAX_TYPE:
            pax_header = header
            pax = _read_data(instream, aligned)[:size]
            continue

        data = None
        if algorithm is not None and typeflag in _HASHED_TYPES:
            data = _read_data(instream, aligned)
            if typeflag == _SYMLINK_TYPE:
                payload = header[_LINKNAME].split(b"\0", 1)[0]
            else:
                payload = data[:size]
            digest = hashlib.new(hash_name, payload).digest()
            pax += pax_hexdump_record(checksum_key, digest)
            updated = bytearray(pax_header)
            updated[_SIZE] = put_octal(len(pax), _SIZE.stop - _SIZE.start)
            pax_header = header_checksum(bytes(updated))

        if pax:
            outstream.write(pax_header)
            outstream.write(pax + bytes(_align(len(pax)) - len(pax)))

        outstream.write(header)
        if data is not None:
            outstream.write(data)
        else:
            _copy(instream, outstream, aligned)

        pax_header = bytes(BLOCK_SIZE)
        pax = b""


class _UsageError(Exception):
    pass


def _usage(out: TextIO) -> None:
    out.write(
        "abuild-tar\n"
        "\n"
        "usage: abuild-tar [--hash[=<algorithm>]] [--cut]\n"
        "\n"
        "options:\n"
        "  --hash[=sha1|md5]  read a tar archive from standard input, add a\n"
        "                     checksum to every regular entry and link and\n"
        "                     write the archive to standard output\n"
        "  --cut              drop the end-of-archive record\n"
        "\n"
    )


def _match_option(name: str) -> str:
    if name in _LONG_OPTIONS:
        return name
    candidates = [opt for opt in _LONG_OPTIONS if opt.startswith(name)]
    if len(candidates) != 1:
        raise _UsageError(name)
    return candidates[0]


def _parse_args(args: Sequence[str]) -> tuple[str | None, bool, bool]:
    algorithm = None
    cut = False
    want_help = False
    for arg in args:
        if arg == "--":
            break
        if arg.startswith("--"):
            name, has_value, value = arg[2:].partition("=")
            option = _match_option(name)
            if option == "hash":
                algorithm = value if has_value and value else "sha1"
            elif has_value:
                raise _UsageError(arg)
            elif option == "help":
                want_help = True
            else:
                cut = True
        elif arg.startswith("-") and arg != "-":
            raise _UsageError(arg)
    return algorithm, cut, want_help


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point."""
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        algorithm, cut, want_help = _parse_args(args)
    except _UsageError:
        _usage(sys.stderr)
        return 1
    if want_help:
        _usage(sys.stdout)
        return 0
    if algorithm is None and not cut:
        _usage(sys.stderr)
        return 1
    if sys.stdin.isatty():
        _usage(sys.stderr)
        return 1
    if algorithm is not None:
        try:
            _resolve_algorithm(algorithm)
        except ValueError:
            _usage(sys.stderr)
            return 1

    outstream = sys.stdout.buffer
    try:
        process(sys.stdin.buffer, outstream, algorithm, cut)
    except (TarStreamError, OSError) as exc:
        print(f"abuild-tar: {exc}", file=sys.stderr)
        return 1
    finally:
        outstream.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())