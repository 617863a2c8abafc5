# abuildtools

Small command-line helpers used while building APK packages. They need a
POSIX system (they use `fcntl`, `pwd` and `grp`).

## Installation

    pip install .

## Commands

### abuild-tar

Reads a tar archive on standard input and writes it to standard output.
With `--hash`, every regular file (`0`), contiguous file (`7`) and symlink
(`2`) entry gets a pax extended header record
`APK-TOOLS.checksum.<ALGORITHM>=<hex digest>`. For a symlink the digest is
taken over the link target; for the other entries over the file data. An
existing pax header in front of the entry is kept and the record is added
to it.

    abuild-tar --hash < data.tar > hashed.tar
    abuild-tar --hash=md5 < data.tar > hashed.tar
    abuild-tar --cut < control.tar > control-cut.tar

`--hash` without a value uses `sha1`; any name that `hashlib` knows is
accepted. `--cut` stops at the first header with an empty name, so the
end-of-archive record is left out and the command exits with status 0.
Without `--cut` the stream is copied until input runs out, and running out
of input is reported as an error (exit status 1). Long options may be
abbreviated. `--help` prints usage to standard output. Usage goes to
standard error, with exit status 1, when neither `--hash` nor `--cut` is
given, when an option is unknown or the algorithm is unknown, and when
standard input is a terminal.

### abuild-gzsplit

Splits a package on standard input — a concatenation of gzip streams — into
files in the current directory, each written compressed exactly as it came
in. The file is chosen by the name of the first tar entry in the stream:

- a name starting with `.SIGN.` goes to `signatures.tar.gz`,
- a name starting with `.PKGINFO` goes to `control.tar.gz`,
- the first stream with any other name goes to `data.tar.gz`.

A second stream matching neither name is an error ("Failed to find
.PKGINFO section").

    abuild-gzsplit < package.apk

The exit status is 0 on success, 1 on an error before the data section was
found and 2 on an error after it.

### abuild-fetch

Downloads a URL into a distfiles directory.

    abuild-fetch [-hk] [-d DESTDIR] URL

- The default `DESTDIR` is `/var/cache/distfiles`.
- A URL of the form `name::https://host/path` is saved as `name`; otherwise
  the part after the last `/` names the file. A URL without `/` is an error.
- Nothing is downloaded when the file already exists.
- A lock file `<file>.lock` serialises concurrent fetches of the same file.
  The lock is retried for up to ten seconds when NFS reports a stale handle.
- The download goes to `<file>.part` with `curl`. If curl cannot be started,
  `wget` is used. Only a completed download is renamed into place.
- A leftover `.part` file is resumed. If curl reports that the server does
  not accept range requests (status 33), the part file is removed and the
  download starts again.
- `-k`, or a plain `http://` URL, turns off certificate checks.
- On SIGABRT, SIGINT, SIGQUIT or SIGTERM the lock file is removed and the
  command exits with status 0.

The exit status of curl or wget is passed on. The command adds these codes:

| code | meaning |
|------|---------|
| 1    | bad option, or the lock could not be taken |
| 201  | neither curl nor wget could be started |
| 202  | the downloader did not end normally |
| 203  | wrong number of arguments; usage was shown |

### abuild-sudo

Gives members of the `abuild` group limited root rights. The command to run
is the part of the program name after its first `-`, so the tool is meant to
be called through links such as `abuild-apk`, `abuild-adduser` or
`abuild-addgroup`. Only these installed programs may be run:
`/bin/adduser`, `/usr/sbin/adduser`, `/bin/addgroup`, `/usr/sbin/addgroup`,
`/sbin/apk` and `/usr/bin/abuild-rmtemp`. The options `--allow-untrusted`
and `--keys-dir` are rejected. `USER` is set to the caller's name, uid and
gid are set to 0 and the command is executed in place of the tool.

The process must be able to become root for this to work. This package does
not create the `abuild-<command>` links or make anything setuid; that is
left to whoever installs it.

### abuild-rmtemp

Removes a temporary build directory directly below `/var/tmp/abuild.`,
depth first and without following symlinks. The entry must belong to the
user named in `USER`. When the caller is not root, the command first tries
to run itself again through `/usr/bin/abuild-sudo`.

    abuild-rmtemp /var/tmp/abuild.XXXXXX

With no argument it does nothing.

## Library use

The building blocks can be imported:

```python
import io
from abuildtools.tar import process

with open("data.tar", "rb") as src:
    out = io.BytesIO()
    process(src, out, "sha1", cut=True)
```

- `abuildtools.tar`: `process`, `get_octal`, `put_octal`, `header_checksum`,
  `pax_hexdump_record`; raises `TarStreamError` on a truncated stream.
- `abuildtools.gzsplit`: `split(instream, outdir)` returns the paths written;
  `find_section`; raises `GzsplitError`, which carries `exit_code`.
- `abuildtools.fetch`: `fetch(url, destdir, insecure)` returns the exit
  status; `resolve_target` returns a `FetchTarget`; `build_commands` returns
  the curl and wget command lines; raises `FetchError`.
- `abuildtools.sudo`: `get_command_path`, `check_option`, `is_in_group`,
  `subcommand_from_argv0`; raises `SudoError`.
- `abuildtools.rmtemp`: `validate_path`, `remove_temp(path, user)`; raises
  `RmtempError`.

Every module has a `main(argv=None)` that the commands above call.

## What is not included

These are only the helper commands. There is no tool here that builds a
package from an APKBUILD, creates or signs keys, or produces the
signature section itself.

## Tests

    pip install .[test]
    pytest