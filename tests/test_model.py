import pytest

from mpd_search import (
    Constraint,
    ConstraintModel,
    FilterType,
    char_to_filter_type,
    is_term_char,
    mpd_escape,
)


class TestConstraintModel:
    def test_starts_empty(self) -> None:
        model = ConstraintModel()
        assert len(model) == 0
        assert model.last() is None
        assert model.to_search_fragment() == ""

    def test_push_appends_empty_term(self) -> None:
        model = ConstraintModel()
        model.push(FilterType.ARTIST)
        assert model.last() == Constraint(FilterType.ARTIST, "")

    def test_pop(self) -> None:
        model = ConstraintModel()
        model.push(FilterType.ARTIST)
        model.push(FilterType.ALBUM)
        assert model.pop() is True
        assert [c.filter_type for c in model] == [FilterType.ARTIST]

    def test_pop_empty(self) -> None:
        assert ConstraintModel().pop() is False

    def test_edit_last_only_touches_last(self) -> None:
        model = ConstraintModel()
        model.push(FilterType.ARTIST)
        model.edit_last(lambda t: t + "x")
        model.push(FilterType.TITLE)
        model.edit_last(lambda t: t + "y")
        assert [c.term for c in model] == ["x", "y"]

    def test_edit_last_on_empty_is_noop(self) -> None:
        model = ConstraintModel()
        model.edit_last(lambda t: t + "x")
        assert len(model) == 0

    def test_fragment_in_creation_order_including_empty_terms(self) -> None:
        model = ConstraintModel()
        model.push(FilterType.ARTIST)
        model.edit_last(lambda t: t + "foo")
        model.push(FilterType.ALBUM_ARTIST)
        model.push(FilterType.ANY)
        model.edit_last(lambda t: t + "live 1999")
        assert model.to_search_fragment() == 'artist "foo" albumartist "" any "live 1999" '


class TestFilterKeys:
    @pytest.mark.parametrize(
        "char,expected",
        [
            (" ", FilterType.ANY),
            ("t", FilterType.TITLE),
            ("T", FilterType.TRACK),
            ("d", FilterType.DISC),
            ("b", FilterType.ALBUM),
            ("a", FilterType.ARTIST),
            ("A", FilterType.ALBUM_ARTIST),
        ],
    )
    def test_table(self, char: str, expected: FilterType) -> None:
        assert char_to_filter_type(char) is expected

    @pytest.mark.parametrize("char", ["x", "1", "\t", "\n", "?"])
    def test_unmapped(self, char: str) -> None:
        assert char_to_filter_type(char) is None

    def test_term_chars(self) -> None:
        assert is_term_char("a")
        assert is_term_char("9")
        assert is_term_char("é")
        assert is_term_char(" ")
        assert not is_term_char('"')
        assert not is_term_char("-")


class TestQuoting:
    def test_plain_term_unchanged(self) -> None:
        assert Constraint(FilterType.TITLE, "so what").to_fragment() == 'title "so what" '

    def test_quotes_and_backslashes_escaped(self) -> None:
        assert mpd_escape('say "hi" \\o/') == 'say \\"hi\\" \\\\o/'
        assert Constraint(FilterType.TITLE, 'a"b').to_fragment() == 'title "a\\"b" '
