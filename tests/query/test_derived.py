"""
Tests for derived tag state: usage recount and tag rename / removal cascades.
"""

import asyncio

from photobase.db.executor import SqlExecuteResult
from photobase.query import execute_query
from photobase.query.derived import (
    RECOUNT_SQL,
    cascade_tag_removal,
    cascade_tag_rename,
    recount_pose_tag_usage,
)


def run(coro):
    return asyncio.run(coro)


def tag_writes(fake_db):
    return [(values["v_1"], values["v_0"]) for _, values in fake_db.find("UPDATE `poses` SET `tags`")]


class TestRecount:
    def test_single_statement_recount(self, fake_db):
        fake_db.on(RECOUNT_SQL, SqlExecuteResult(affected_rows=4))
        assert run(recount_pose_tag_usage()) == 4
        assert fake_db.sql() == [RECOUNT_SQL]


class TestRename:
    """Renaming a tag rewrites every pose that carries it."""

    def test_rename_rewrites_and_dedupes(self, fake_db):
        fake_db.rows(
            "FROM `poses` WHERE JSON_OVERLAPS",
            [
                {"id": 1, "tags": '["旧", "站姿"]'},
                {"id": 2, "tags": '["旧", "新"]'},
            ],
        )

        assert run(cascade_tag_rename("旧", "新")) == 2
        assert tag_writes(fake_db) == [(1, '["新", "站姿"]'), (2, '["新"]')]
        assert fake_db.calls[0][1] == {"v_0": '["旧"]'}

    def test_second_rename_changes_nothing(self, fake_db):
        # After the first pass no pose still matches the old name
        assert run(cascade_tag_rename("旧", "新")) == 0
        assert tag_writes(fake_db) == []

    def test_unchanged_rows_are_not_written(self, fake_db):
        fake_db.rows("FROM `poses` WHERE JSON_OVERLAPS", [{"id": 1, "tags": '["新"]'}])
        assert run(cascade_tag_rename("旧", "新")) == 0
        assert tag_writes(fake_db) == []

    def test_same_name_is_a_no_op(self, fake_db):
        assert run(cascade_tag_rename("站姿", "站姿")) == 0
        assert fake_db.calls == []


class TestRemoval:
    def test_removal_strips_names(self, fake_db):
        fake_db.rows("FROM `poses` WHERE JSON_OVERLAPS", [{"id": 7, "tags": ["a", "b", "c"]}])
        assert run(cascade_tag_removal(["a", "c", "a", ""])) == 1
        assert fake_db.calls[0][1] == {"v_0": '["a", "c"]'}
        assert tag_writes(fake_db) == [(7, '["b"]')]

    def test_nothing_to_remove(self, fake_db):
        assert run(cascade_tag_removal([])) == 0
        assert fake_db.calls == []


class TestCascadeThroughQueries:
    """Structured writes to pose_tags cascade into poses before recounting."""

    def test_tag_rename_via_update(self, fake_db, admin):
        fake_db.rows("SELECT `name` FROM `pose_tags`", [{"name": "旧"}])
        fake_db.rows("FROM `poses` WHERE JSON_OVERLAPS", [{"id": 1, "tags": '["旧", "户外"]'}])

        result = run(
            execute_query(
                {
                    "table": "pose_tags",
                    "action": "update",
                    "values": {"name": "新"},
                    "filters": [{"column": "id", "operator": "eq", "value": 3}],
                },
                admin,
            )
        )

        assert result.error is None
        order = [
            fake_db.index_of("SELECT `name` FROM `pose_tags`"),
            fake_db.index_of("UPDATE `pose_tags` SET `name`"),
            fake_db.index_of("UPDATE `poses` SET `tags`"),
            fake_db.index_of(RECOUNT_SQL),
        ]
        assert order == sorted(order)
        assert tag_writes(fake_db) == [(1, '["新", "户外"]')]

    def test_tag_delete_via_query(self, fake_db, admin):
        fake_db.rows("SELECT `name` FROM `pose_tags`", [{"name": "旧"}])
        fake_db.rows("FROM `poses` WHERE JSON_OVERLAPS", [{"id": 1, "tags": '["旧", "户外"]'}])

        run(
            execute_query(
                {
                    "table": "pose_tags",
                    "action": "delete",
                    "filters": [{"column": "id", "operator": "eq", "value": 3}],
                },
                admin,
            )
        )

        assert fake_db.index_of("DELETE FROM `pose_tags`") < fake_db.index_of("UPDATE `poses` SET `tags`")
        assert tag_writes(fake_db) == [(1, '["户外"]')]
        assert fake_db.sql()[-1] == RECOUNT_SQL
