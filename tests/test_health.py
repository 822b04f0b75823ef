"""Basic health check tests."""


def test_import_photobase():
    """Test that photobase package can be imported."""
    import photobase
    assert photobase.__version__ == "1.4.0"


def test_settings_load_from_environment():
    from photobase.config import get_settings

    settings = get_settings()
    assert settings.sql_endpoint == "http://sql.test/execute"
    assert settings.sql_database == "photobase_test"
    assert settings.is_development
    assert settings.booking_max_advance_days == 60


def test_import_models():
    """Test that request models can be built from their wire form."""
    from photobase.query import QueryRequest, RpcRequest

    request = QueryRequest.model_validate(
        {"table": "poses", "action": "select", "wantCount": True, "range": {"from": 0, "to": 9}}
    )
    assert request.want_count is True
    assert request.range.start == 0
    assert request.range.end == 9

    rpc = RpcRequest.model_validate({"functionName": "like_photo", "args": {"p_photo_id": "p1"}})
    assert rpc.function_name == "like_photo"


def test_procedure_catalog_is_registered():
    from photobase.rpc import procedure_names

    assert set(procedure_names()) == {
        "batch_increment_pose_views",
        "bind_user_to_album",
        "check_date_availability",
        "create_bookings",
        "delete_album_photo",
        "get_admin_dashboard_stats",
        "get_album_content",
        "get_public_gallery",
        "get_random_poses_batch",
        "get_user_bound_albums",
        "increment_photo_view",
        "increment_pose_view",
        "like_photo",
        "log_user_activity",
        "pin_photo_to_wall",
        "rebuild_pose_tag_counts",
        "run_maintenance_tasks",
    }
