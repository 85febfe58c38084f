from __future__ import annotations

from sysguard.parser import load_capture, parse_capture, sample_capture


def test_name_count_lines():
    assert parse_capture("read,450\nwrite,380\n") == {"read": 450, "write": 380}


def test_bare_names_count_once_and_lowercase():
    text = "OPENAT\nopenat\n  Close  \n"
    assert parse_capture(text) == {"openat": 2, "close": 1}


def test_counts_accumulate_across_lines():
    text = "read,10\nread,5\nread\n"
    assert parse_capture(text) == {"read": 16}


def test_malformed_lines_are_dropped():
    text = "\n".join([
        "read,abc",       # not a number
        ",12",            # empty name
        "write,-4",       # negative count
        "mmap, 7 ",
        "",
        "   ",
    ])
    assert parse_capture(text) == {"mmap": 7}


def test_splits_on_first_comma_only():
    # "3,4" is not a base-10 integer
    assert parse_capture("ioctl,3,4\nioctl,2") == {"ioctl": 2}


def test_crlf_input():
    assert parse_capture("read,1\r\nwrite,2\r\n") == {"read": 1, "write": 2}


def test_comma_lines_keep_case():
    assert parse_capture("Read,3") == {"Read": 3}


def test_load_capture(tmp_path):
    p = tmp_path / "baseline.txt"
    p.write_text("read,450\nexecve\n", encoding="utf-8")
    name, counts = load_capture(str(p))
    assert name == "baseline.txt"
    assert counts == {"read": 450, "execve": 1}


def test_sample_captures_parse():
    normal = parse_capture(sample_capture("normal"))
    intrusion = parse_capture(sample_capture("intrusion"))
    assert normal["read"] == 450
    assert "execve" not in normal
    assert intrusion["execve"] == 15
