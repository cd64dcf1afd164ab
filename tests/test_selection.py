"""
Tests for parsing the human's reply to a question.
"""

from memoresolve.resolution.selection import parse_selection


class TestParseSelection:

    def test_single_number_text(self):
        selection = parse_selection("2")
        assert selection.valid
        assert selection.indices == (2,)
        assert not selection.is_multiple

    def test_integer(self):
        assert parse_selection(3).indices == (3,)

    def test_list_of_integers(self):
        selection = parse_selection([1, 3, 1])
        assert selection.indices == (1, 3)
        assert selection.is_multiple

    def test_several_numbers_in_text(self):
        assert parse_selection("1 and 3").indices == (1, 3)
        assert parse_selection("1,3").indices == (1, 3)

    def test_select_all_tokens(self):
        for reply in ("both", "All", "שניהם", "כולם", " both! "):
            selection = parse_selection(reply)
            assert selection.valid, reply
            assert selection.select_all, reply

    def test_custom_tokens(self):
        assert parse_selection("everything", select_all_tokens=("everything",)).select_all
        assert not parse_selection("both", select_all_tokens=("everything",)).valid

    def test_invalid_values(self):
        for reply in ("", "   ", "banana", "0", "-1", 0, -2, True, None, [], [0, 1], 1.5):
            assert not parse_selection(reply).valid, reply

    def test_raw_is_kept(self):
        assert parse_selection("Just this one").raw == "Just this one"
        assert parse_selection("Just this one").text == "just this one"
