import pytest

from media_twins.errors import ConfigurationError
from media_twins.storage import query as q
from media_twins.storage.query import Comparator, Condition, NotInTable, Statement
from media_twins.storage.record_store import Tables


class TestCondition:

    def test_single_value_is_plain_equality(self):
        assert Condition.equals("ID", [7]).sql() == ("ID = ?", (7,))

    def test_many_values_use_in(self):
        assert Condition.equals("ID", [1, 2, 3]).sql() == ("ID IN (?,?,?)", (1, 2, 3))

    def test_no_values_matches_nothing(self):
        assert Condition.equals("ID", []).sql() == ("0", ())
        assert Condition.not_equals("ID", []).sql() == ("1", ())

    def test_not_equals(self):
        assert Condition.not_equals("ID", [4, 5]).sql() == ("ID NOT IN (?,?)", (4, 5))

    def test_like_is_ored(self):
        sql, params = Condition.like("post_name", ["a-%", "b-%"]).sql()
        assert sql == "(post_name LIKE ? ESCAPE '\\' OR post_name LIKE ? ESCAPE '\\')"
        assert params == ("a-%", "b-%")

    def test_prefix_escapes_wildcards(self):
        c = Condition.prefix("post_title", "basic_013 100%")
        assert c.comparator is Comparator.LIKE
        assert c.values == ("basic\\_013 100\\%-%",)

    def test_not_in_table(self):
        sql, params = NotInTable("ID", "temp.keep_ids", "id").sql()
        assert sql == "ID NOT IN (SELECT id FROM temp.keep_ids)"
        assert params == ()


class TestBuilders:

    def test_select_with_paging(self):
        stmt = q.select("wp_posts", ["ID"], [Condition.equals("post_type", ["attachment"])],
                        order_by="ID", limit=500, offset=1000)
        assert stmt.sql == "SELECT ID FROM wp_posts WHERE post_type = ? ORDER BY ID ASC LIMIT ? OFFSET ?"
        assert stmt.params == ("attachment", 500, 1000)

    def test_select_first_page_has_no_offset(self):
        stmt = q.select("wp_posts", ["ID"], limit=10, offset=0)
        assert stmt.sql == "SELECT ID FROM wp_posts LIMIT ?"

    def test_delete(self):
        stmt = q.delete("wp_postmeta", [Condition.equals("post_id", [1, 2])])
        assert stmt.sql == "DELETE FROM wp_postmeta WHERE post_id IN (?,?)"
        assert stmt.params == (1, 2)

    def test_unconditional_delete_is_refused(self):
        with pytest.raises(ValueError):
            q.delete("wp_posts", [])

    @pytest.mark.parametrize("name", ["wp_posts; DROP TABLE x", "", "1abc", "a.b"])
    def test_bad_identifiers(self, name):
        with pytest.raises(ConfigurationError):
            q.ident(name)

    def test_bad_table_prefix(self):
        with pytest.raises(ConfigurationError):
            Tables.with_prefix("wp-")
        assert Tables.with_prefix("site2_").meta == "site2_postmeta"


class TestRender:

    def test_inlines_params(self):
        stmt = Statement("DELETE FROM wp_posts WHERE ID IN (?,?)", (1, 2))
        assert stmt.render() == "DELETE FROM wp_posts WHERE ID IN (1,2)"

    def test_quotes_strings(self):
        stmt = Statement("SELECT ID FROM wp_posts WHERE post_title = ?", ("it's",))
        assert stmt.render() == "SELECT ID FROM wp_posts WHERE post_title = 'it''s'"
