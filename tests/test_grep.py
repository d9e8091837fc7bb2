import io

import pytest

from xvfs.grep import grep, main, match, matchhere, matchstar


@pytest.mark.parametrize(
    "re, text",
    [
        ("abc", "xxabcxx"),
        ("^abc", "abcdef"),
        ("a.c", "zzaxcz"),
        ("ab*c", "ac"),
        ("ab*c", "abbbbc"),
        ("abc$", "xxabc"),
        ("", "anything"),
        ("", ""),
        (".*", ""),
        ("^$", ""),
    ],
)
def test_match_accepts(re, text):
    assert match(re, text) is True


@pytest.mark.parametrize(
    "re, text",
    [
        ("^abc", "xabc"),
        ("abc$", "abcx"),
        ("a.c", "ac"),
        ("ab*c", "abd"),
        ("^$", "x"),
        ("xyz", ""),
    ],
)
def test_match_rejects(re, text):
    assert match(re, text) is False


def test_matchhere_anchors_at_start():
    assert matchhere("abc", "abcd") is True
    assert matchhere("abc", "xabc") is False


def test_matchstar_consumes_repeats():
    assert matchstar("a", "b", "aaab") is True
    assert matchstar("a", "b", "aaac") is False
    assert matchstar(".", "c", "xyzc") is True


def test_grep_yields_matching_lines():
    stream = io.BytesIO(b"foo\nbar\nfood\n")
    assert list(grep("foo", stream)) == [b"foo\n", b"food\n"]


def test_grep_accepts_bytes_pattern():
    stream = io.BytesIO(b"one\ntwo\nthree\n")
    assert list(grep(b"^t", stream)) == [b"two\n", b"three\n"]


def test_grep_drops_unterminated_last_line():
    stream = io.BytesIO(b"foo\nfoo")
    assert list(grep("foo", stream)) == [b"foo\n"]


def test_grep_lines_fit_buffer():
    data = b"a" * 2000 + b"\nab\n"
    lines = list(grep("a", io.BytesIO(data)))
    assert lines[-1] == b"ab\n"
    assert all(line.endswith(b"\n") and len(line) < 1024 for line in lines)


def test_main_reads_files(tmp_path, capsysbinary):
    path = tmp_path / "in.txt"
    path.write_bytes(b"apple\nbanana\ncherry\n")
    assert main(["an", str(path)]) == 0
    assert capsysbinary.readouterr().out == b"banana\n"


def test_main_usage(capsys):
    assert main([]) == 1
    assert "usage: grep pattern [file ...]" in capsys.readouterr().err


def test_main_cannot_open(tmp_path, capsysbinary):
    missing = tmp_path / "missing"
    assert main(["x", str(missing)]) == 1
    out = capsysbinary.readouterr().out
    assert out == f"grep: cannot open {missing}\n".encode()