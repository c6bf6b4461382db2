import pytest

from shared.dal.errors import InvalidUpdateError
from shared.dal.expressions import (
    MISSING,
    Update,
    attr,
    attribute_exists,
    attribute_not_exists,
    parse_path,
    resolve,
)


def _game_state() -> dict:
    return {
        "game_id": "g1",
        "current_index": 53,
        "interaction_count": 0,
        "pending_discard": None,
        "interaction_connection_ids": ["c2"],
        "hands": [
            {"connection_id": "c1", "hand": [1, 2, 3], "played_tiles": []},
            {"connection_id": "c2", "hand": [4, 5], "played_tiles": [136]},
        ],
    }


class TestPaths:
    def test_parse_nested_path(self):
        assert parse_path("hands[1].played_tiles") == ("hands", 1, "played_tiles")

    def test_parse_multiple_indexes(self):
        assert parse_path("grid[0][2]") == ("grid", 0, 2)

    @pytest.mark.parametrize("path", ["", "hands.", "1abc", "hands[x]", "a b"])
    def test_invalid_path_rejected(self, path):
        with pytest.raises(InvalidUpdateError, match="Invalid attribute path"):
            parse_path(path)

    def test_resolve_present_value(self):
        assert resolve(_game_state(), parse_path("hands[0].hand")) == [1, 2, 3]

    def test_resolve_out_of_range_index_is_missing(self):
        assert resolve(_game_state(), parse_path("hands[4].hand")) is MISSING

    def test_resolve_null_is_missing(self):
        assert resolve(_game_state(), parse_path("pending_discard")) is MISSING


class TestConditions:
    def test_attribute_exists(self):
        item = _game_state()
        assert attribute_exists("game_id").evaluate(item)
        assert not attribute_exists("game_id").evaluate(None)
        assert not attribute_exists("pending_discard").evaluate(item)

    def test_attribute_not_exists_on_missing_record(self):
        assert attribute_not_exists("game_id").evaluate(None)
        assert attribute_not_exists("pending_discard").evaluate(_game_state())

    @pytest.mark.parametrize(
        ("condition", "expected"),
        [
            (attr("current_index").eq(53), True),
            (attr("current_index").ne(53), False),
            (attr("current_index").lt(144), True),
            (attr("current_index").lte(53), True),
            (attr("current_index").gt(53), False),
            (attr("current_index").gte(144), False),
        ],
    )
    def test_comparisons(self, condition, expected):
        assert condition.evaluate(_game_state()) is expected

    def test_compare_missing_operand_never_matches(self):
        item = _game_state()
        assert not attr("dealer").eq(0).evaluate(item)
        assert not attr("dealer").ne(0).evaluate(item)

    def test_compare_incomparable_types_is_false(self):
        assert not attr("hands").lt(3).evaluate(_game_state())

    def test_size(self):
        item = _game_state()
        assert attr("hands").size().eq(2).evaluate(item)
        assert attr("hands[0].hand").size().lt(4).evaluate(item)
        assert not attr("current_index").size().eq(0).evaluate(item)

    def test_contains_and_not(self):
        item = _game_state()
        assert attr("interaction_connection_ids").contains("c2").evaluate(item)
        assert (~attr("interaction_connection_ids").contains("c3")).evaluate(item)

    def test_and_requires_every_condition(self):
        item = _game_state()
        both = attribute_exists("game_id") & attr("current_index").lt(144)
        assert both.evaluate(item)
        assert not (both & attr("interaction_count").gt(0)).evaluate(item)


class TestUpdate:
    def test_apply_does_not_mutate_input(self):
        item = _game_state()
        Update().set("hands[0].hand", []).add("current_index", 1).apply(item)
        assert item == _game_state()

    def test_set_nested(self):
        result = Update().set("hands[1].hand", [9]).apply(_game_state())
        assert result["hands"][1]["hand"] == [9]

    def test_set_index_equal_to_length_appends(self):
        result = Update().set("hands[0].hand[3]", 7).apply(_game_state())
        assert result["hands"][0]["hand"] == [1, 2, 3, 7]

    def test_add_increments_and_defaults_missing_to_zero(self):
        result = Update().add("current_index", 1).add("round_number", 1).apply(_game_state())
        assert result["current_index"] == 54
        assert result["round_number"] == 1

    def test_add_to_non_number_rejected(self):
        with pytest.raises(InvalidUpdateError, match="not a number"):
            Update().add("hands", 1).apply(_game_state())

    def test_append_concatenates_and_defaults_missing_to_empty(self):
        result = Update().append("hands[1].played_tiles", [137]).append("discarded_tiles", [5]).apply(_game_state())
        assert result["hands"][1]["played_tiles"] == [136, 137]
        assert result["discarded_tiles"] == [5]

    def test_append_to_non_list_rejected(self):
        with pytest.raises(InvalidUpdateError, match="not a list"):
            Update().append("current_index", [1]).apply(_game_state())

    def test_remove_list_element_and_key(self):
        result = Update().remove("hands[0]").remove("pending_discard").apply(_game_state())
        assert [hand["connection_id"] for hand in result["hands"]] == ["c2"]
        assert "pending_discard" not in result

    def test_missing_intermediate_path_rejected(self):
        with pytest.raises(InvalidUpdateError, match="does not exist"):
            Update().set("hands[5].hand", []).apply(_game_state())

    def test_actions_apply_in_order(self):
        result = Update().set("interaction_count", 0).add("interaction_count", 2).apply(_game_state())
        assert result["interaction_count"] == 2

    def test_bool_and_repr(self):
        assert not Update()
        update = Update().set("a", 1).remove("b")
        assert update
        assert repr(update) == "Update(SET a, REMOVE b)"
