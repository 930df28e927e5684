from fattools.expand import expand, safe_popen_out


def test_none():
    assert expand(None) is None


def test_empty():
    assert expand("") == ""


def test_plain_text_unchanged():
    assert expand("/dev/fd0") == "/dev/fd0"


def test_variable_expanded(monkeypatch):
    monkeypatch.setenv("FATTOOLS_TEST_VAR", "imagefile")
    assert expand("$FATTOOLS_TEST_VAR") == "imagefile"


def test_variable_in_path(monkeypatch):
    monkeypatch.setenv("FATTOOLS_TEST_DIR", "/tmp/x")
    assert expand("$FATTOOLS_TEST_DIR/disk.img") == "/tmp/x/disk.img"


def test_popen_out_reads_output():
    assert safe_popen_out(["/bin/sh", "-c", "echo hello"], 100) == b"hello\n"


def test_popen_out_respects_limit():
    assert safe_popen_out(["/bin/sh", "-c", "echo hello"], 3) == b"hel"


def test_popen_out_missing_command():
    assert safe_popen_out(["/nonexistent/fattools-cmd"], 10) == b""