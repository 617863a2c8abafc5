import os
from types import SimpleNamespace
from unittest import mock

import pytest

from abuildtools.sudo import (
    VALID_COMMANDS,
    SudoError,
    check_option,
    get_command_path,
    is_in_group,
    main,
    subcommand_from_argv0,
)


@pytest.mark.parametrize("opt", ["--allow-untrusted", "--keys-dir"])
def test_check_option_rejects(opt):
    with pytest.raises(SudoError, match="not allowed option"):
        check_option(opt)


def test_check_option_allows_others():
    assert check_option("--no-cache") is None


@pytest.mark.parametrize(
    "argv0, expected",
    [
        ("/usr/bin/abuild-apk", "apk"),
        ("abuild-adduser", "adduser"),
        ("-abuild-rmtemp", "abuild-rmtemp"),
    ],
)
def test_subcommand_from_argv0(argv0, expected):
    assert subcommand_from_argv0(argv0) == expected


def test_subcommand_without_dash():
    with pytest.raises(SudoError, match="has no '-'"):
        subcommand_from_argv0("/usr/bin/sudo")


def test_get_command_path_first_installed_match():
    with mock.patch("os.access", return_value=True):
        assert get_command_path("apk") == "/sbin/apk"
        assert get_command_path("adduser") == "/bin/adduser"
        assert get_command_path("abuild-rmtemp") == "/usr/bin/abuild-rmtemp"
        assert get_command_path("rm") is None


def test_get_command_path_skips_missing():
    with mock.patch("os.access", side_effect=lambda p, m: p.startswith("/usr/")):
        assert get_command_path("adduser") == "/usr/sbin/adduser"
        assert get_command_path("apk") is None


def test_get_command_path_result_is_allowed():
    result = get_command_path("apk")
    assert result is None or (result in VALID_COMMANDS and result.endswith("/apk"))


def test_is_in_group():
    groups = os.getgroups()
    assert all(is_in_group(gid) for gid in groups)
    assert is_in_group(max(groups, default=0) + 1) is False


def test_main_without_group(capsys):
    with mock.patch("grp.getgrnam", side_effect=KeyError("abuild")):
        assert main(["abuild-apk"]) == 1
    assert "abuild: Group not found" in capsys.readouterr().err


def test_main_invalid_subcommand(capsys, monkeypatch):
    monkeypatch.setenv("USER", "nobody")
    with mock.patch("grp.getgrnam", return_value=SimpleNamespace(gr_gid=0)), \
            mock.patch("os.getuid", return_value=0):
        assert main(["abuild-rm", "-rf"]) == 1
    assert "rm: Not a valid subcommand" in capsys.readouterr().err


def test_main_forbidden_option(capsys, monkeypatch):
    monkeypatch.setenv("USER", "nobody")
    with mock.patch("grp.getgrnam", return_value=SimpleNamespace(gr_gid=0)), \
            mock.patch("os.getuid", return_value=0), \
            mock.patch("os.access", return_value=True):
        assert main(["abuild-apk", "add", "--allow-untrusted"]) == 1
    assert "--allow-untrusted: not allowed option" in capsys.readouterr().err