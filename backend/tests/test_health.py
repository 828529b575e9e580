from sqlalchemy import create_engine, inspect
from sqlalchemy.pool import StaticPool

from app.db.bootstrap import REQUIRED_COLUMNS, find_schema_gaps


def test_health_endpoints(client):
    live = client.get("/api/health/live")
    assert live.status_code == 200
    assert live.json()["status"] == "ok"

    ready = client.get("/api/health/ready")
    assert ready.status_code in {200, 503}
    payload = ready.json()
    assert "database" in payload
    assert payload["status"] in {"ok", "degraded"}


def test_schema_gaps_are_empty_for_full_metadata(engine):
    with engine.connect() as connection:
        missing_tables, missing_columns = find_schema_gaps(connection)
    assert missing_tables == []
    assert missing_columns == {}


def test_schema_gaps_report_missing_tables():
    empty = create_engine("sqlite+pysqlite://", poolclass=StaticPool)
    try:
        with empty.connect() as connection:
            missing_tables, _ = find_schema_gaps(connection)
        assert "slot_reservations" in missing_tables
        assert set(missing_tables) == set(REQUIRED_COLUMNS)
        assert inspect(empty).get_table_names() == []
    finally:
        empty.dispose()
