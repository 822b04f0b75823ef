"""
Tests for like / view toggles and counters.
"""

import asyncio

from photobase.errors import StoreError
from photobase.rpc import execute_rpc


def run(coro):
    return asyncio.run(coro)


class TestLikePhoto:
    """Like toggling."""

    def test_requires_sign_in(self, fake_db, guest):
        result = run(execute_rpc("like_photo", {"p_photo_id": "p1"}, guest))
        assert result.error.code == "UNAUTHORIZED"
        assert fake_db.calls == []

    def test_first_call_likes(self, fake_db, alice):
        fake_db.rows("SELECT like_count AS value", [{"value": "1"}])

        result = run(execute_rpc("like_photo", {"p_photo_id": "p1"}, alice))

        assert result.data == {"liked": True, "like_count": 1}
        insert_sql, insert_values = fake_db.find("INSERT INTO photo_likes")[0]
        assert insert_values == {"user_id": "user-alice", "photo_id": "p1"}
        assert fake_db.find("like_count = like_count + 1")
        assert not fake_db.find("DELETE FROM photo_likes")

    def test_second_call_unlikes_and_clamps(self, fake_db, alice):
        fake_db.rows("SELECT id FROM photo_likes", [{"id": 5}])
        fake_db.rows("SELECT like_count AS value", [{"value": 0}])

        result = run(execute_rpc("like_photo", {"p_photo_id": "p1"}, alice))

        assert result.data == {"liked": False, "like_count": 0}
        assert fake_db.find("DELETE FROM photo_likes")
        assert fake_db.find("GREATEST(0, like_count - 1)")
        assert not fake_db.find("INSERT INTO photo_likes")

    def test_missing_photo_id(self, fake_db, alice):
        result = run(execute_rpc("like_photo", {}, alice))
        assert result.error.code == "VALIDATION_ERROR"


class TestIncrementPhotoView:
    """One view per (photo, viewer)."""

    def test_first_view_by_user_counts(self, fake_db, alice):
        fake_db.rows("SELECT view_count AS value", [{"value": 8}])

        result = run(execute_rpc("increment_photo_view", {"p_photo_id": "p1"}, alice))

        assert result.data == {"counted": True, "view_count": 8}
        _, values = fake_db.find("INSERT INTO photo_views")[0]
        assert values["user_id"] == "user-alice"
        assert values["session_id"] is None
        assert fake_db.find("view_count = view_count + 1")

    def test_repeat_view_by_user_is_ignored(self, fake_db, alice):
        fake_db.rows("SELECT id FROM photo_views", [{"id": "v1"}])

        result = run(execute_rpc("increment_photo_view", {"p_photo_id": "p1"}, alice))

        assert result.data["counted"] is False
        assert not fake_db.find("INSERT INTO photo_views")
        assert not fake_db.find("view_count = view_count + 1")

    def test_anonymous_views_dedupe_by_session(self, fake_db, guest):
        run(execute_rpc("increment_photo_view", {"p_photo_id": "p1", "p_session_id": "s-123"}, guest))

        select_sql, select_values = fake_db.find("SELECT id FROM photo_views")[0]
        assert "session_id = {{session_id}}" in select_sql
        assert select_values == {"photo_id": "p1", "session_id": "s-123"}
        _, insert_values = fake_db.find("INSERT INTO photo_views")[0]
        assert insert_values["user_id"] is None
        assert insert_values["session_id"] == "s-123"

    def test_anonymous_without_session_never_counts(self, fake_db, guest):
        result = run(execute_rpc("increment_photo_view", {"p_photo_id": "p1"}, guest))

        assert result.data["counted"] is False
        assert not fake_db.find("photo_views")

    def test_lost_race_is_not_counted_twice(self, fake_db, alice):
        fake_db.on("INSERT INTO photo_views", StoreError("Duplicate entry 'p1-user-alice'", errno=1062))

        result = run(execute_rpc("increment_photo_view", {"p_photo_id": "p1"}, alice))

        assert result.error is None
        assert result.data["counted"] is False
        assert not fake_db.find("view_count = view_count + 1")

    def test_other_store_errors_propagate(self, fake_db, alice):
        fake_db.on("INSERT INTO photo_views", StoreError("Table is read only", code="ER_READ_ONLY"))

        result = run(execute_rpc("increment_photo_view", {"p_photo_id": "p1"}, alice))

        assert result.error.code == "ER_READ_ONLY"


class TestPoseViews:
    def test_single_pose_view(self, fake_db, guest):
        run(execute_rpc("increment_pose_view", {"p_pose_id": "12"}, guest))
        assert fake_db.calls[0][1] == {"pose_id": 12}

    def test_invalid_pose_id_is_ignored(self, fake_db, guest):
        result = run(execute_rpc("increment_pose_view", {"p_pose_id": "abc"}, guest))
        assert result.error is None
        assert fake_db.calls == []

    def test_batch_skips_invalid_items(self, fake_db, guest):
        result = run(
            execute_rpc(
                "batch_increment_pose_views",
                {
                    "pose_views": [
                        {"pose_id": 1, "count": 3},
                        {"pose_id": 2, "count": 0},
                        {"pose_id": -1, "count": 5},
                        "junk",
                        {"pose_id": "4", "count": "2"},
                    ]
                },
                guest,
            )
        )

        assert result.data == {"updated": 2}
        assert [values for _, values in fake_db.calls] == [
            {"pose_id": 1, "count": 3},
            {"pose_id": 4, "count": 2},
        ]
