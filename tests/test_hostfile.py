"""Tests for aemeye.utils.hostfile."""
import io

import pytest

from aemeye.exceptions import InputSourceError
from aemeye.utils.hostfile import read_host_lines, read_hosts


def test_blank_and_comment_lines_skipped():
    src = io.StringIO("  a.test  \n\n# comment\nhttp://b.test\n\t\n")
    assert read_host_lines(src) == ["a.test", "http://b.test"]


def test_reads_file(tmp_path):
    p = tmp_path / "hosts.txt"
    p.write_text("a.test\nb.test\n", encoding="utf-8")
    assert read_hosts(str(p)) == ["a.test", "b.test"]


@pytest.mark.parametrize("path", [None, "", "-"])
def test_stdin_when_no_path(path):
    assert read_hosts(path, stdin=io.StringIO("x.test\n")) == ["x.test"]


def test_missing_file_raises_input_error(tmp_path):
    missing = tmp_path / "nope.txt"
    with pytest.raises(InputSourceError) as info:
        read_hosts(str(missing))
    assert info.value.exit_code == 1
    assert str(missing) in info.value.message
