from pow_client.state import LineCursor, split_buffer


def test_split_buffer():
    assert split_buffer("") == []
    assert split_buffer("a\nb") == ["a", "b"]


def test_cursor_returns_appended_lines():
    cursor = LineCursor()
    assert cursor.advance("") == []
    assert cursor.advance("one") == ["one"]
    assert cursor.advance("one") == []
    assert cursor.advance("one\ntwo\nthree") == ["two", "three"]
    assert cursor.delivered == 3


def test_cursor_handles_dropped_lines():
    cursor = LineCursor()
    cursor.advance("1\n2\n3")
    # buffer holds at most three lines
    assert cursor.advance("3\n4\n5") == ["4", "5"]
    assert cursor.advance("4\n5\n6") == ["6"]


def test_cursor_delivers_empty_first_line_with_later_output():
    cursor = LineCursor()
    # a lone empty line is indistinguishable from an empty buffer
    assert cursor.advance("") == []
    assert cursor.advance("\nnext") == ["", "next"]
    assert cursor.advance("\nnext\n") == [""]
    assert cursor.delivered == 3


def test_cursor_without_overlap_delivers_everything():
    cursor = LineCursor()
    cursor.advance("a\nb")
    assert cursor.advance("x\ny") == ["x", "y"]
