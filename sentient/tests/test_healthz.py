from sentient.core.database import get_engine, payments


def test_healthz_always_ok(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json().get("status") == "ok"


def test_readyz_ok_with_tables(client):
    resp = client.get("/readyz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_readyz_reports_missing_tables(client):
    payments.drop(get_engine())
    resp = client.get("/readyz")
    assert resp.status_code == 503
    assert resp.json()["detail"] == "missing tables: payments"


def test_readyz_db_unreachable(client, monkeypatch):
    import sentient.core.database as database

    class BrokenEngine:
        def connect(self):
            from sqlalchemy.exc import OperationalError

            raise OperationalError("SELECT 1", {}, Exception("could not connect"))

    monkeypatch.setattr(database, "get_engine", lambda: BrokenEngine())
    resp = client.get("/readyz")
    assert resp.status_code == 503
    assert resp.json()["detail"] == "database unreachable"
