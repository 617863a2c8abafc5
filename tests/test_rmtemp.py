import os
import pwd
from unittest import mock

import pytest

from abuildtools.rmtemp import PREFIX, RmtempError, main, remove_temp, validate_path


def current_user():
    return pwd.getpwuid(os.getuid()).pw_name


def test_validate_path_accepts_direct_child():
    path = PREFIX + "build123"
    assert validate_path(path) == path


@pytest.mark.parametrize(
    "path",
    ["/tmp/abuild.x", PREFIX + "x/y", "/var/tmp/other", "var/tmp/abuild.x"],
)
def test_validate_path_rejects(path):
    with pytest.raises(RmtempError, match="Invalid path"):
        validate_path(path)


def test_remove_temp_tree(tmp_path):
    top = tmp_path / "work"
    (top / "a" / "b").mkdir(parents=True)
    (top / "a" / "b" / "file").write_text("x")
    (top / "file").write_text("y")
    remove_temp(top, current_user())
    assert not top.exists()
    assert list(tmp_path.iterdir()) == []


def test_remove_temp_does_not_follow_links(tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "keep").write_text("keep")
    top = tmp_path / "work"
    top.mkdir()
    (top / "link").symlink_to(outside)
    remove_temp(top, current_user())
    assert not top.exists()
    assert (outside / "keep").read_text() == "keep"


def test_remove_temp_single_file(tmp_path):
    target = tmp_path / "single"
    target.write_text("z")
    remove_temp(target, current_user())
    assert not target.exists()


def test_remove_temp_missing(tmp_path):
    with pytest.raises(RmtempError):
        remove_temp(tmp_path / "missing", current_user())


def test_remove_temp_unknown_user(tmp_path):
    with pytest.raises(RmtempError, match="Incorrect user"):
        remove_temp(tmp_path, "no-such-user-here")
    with pytest.raises(RmtempError, match="Incorrect user"):
        remove_temp(tmp_path, None)
    assert tmp_path.exists()


def test_remove_temp_other_owner(tmp_path):
    other = next(p for p in pwd.getpwall() if p.pw_uid != os.getuid())
    target = tmp_path / "work"
    target.mkdir()
    with pytest.raises(RmtempError, match="Permission denied"):
        remove_temp(target, other.pw_name)
    assert target.is_dir()


def test_main_without_arguments():
    assert main([]) == 0


def test_main_rejects_invalid_path(capsys):
    with mock.patch("os.getuid", return_value=0):
        assert main(["/tmp/elsewhere"]) == 1
    assert "Invalid path: /tmp/elsewhere" in capsys.readouterr().err