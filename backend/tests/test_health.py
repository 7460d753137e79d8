from fastapi import status


def test_health(client):
    r = client.get("/health")
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["status"] == "ok"


def test_readyz_checks_db_and_storage(client):
    r = client.get("/readyz")
    assert r.status_code == status.HTTP_200_OK
    body = r.json()
    assert body["checks"]["db"] == "ok"
    assert body["checks"]["storage"] == "ok"


def test_metrics_exposes_upload_counters(client):
    r = client.get("/metrics")
    assert r.status_code == status.HTTP_200_OK
    assert "pc_uploads_total" in r.text


def test_metrics_hidden_in_production_without_token(client, monkeypatch):
    from personal_cloud.core.config import get_settings

    settings = get_settings()
    monkeypatch.setattr(settings, "environment", "production")
    monkeypatch.setattr(settings, "metrics_token", None)

    r = client.get("/metrics")
    assert r.status_code == status.HTTP_404_NOT_FOUND


def test_metrics_requires_token_in_production(client, monkeypatch):
    from personal_cloud.core.config import get_settings

    settings = get_settings()
    monkeypatch.setattr(settings, "environment", "production")
    monkeypatch.setattr(settings, "metrics_token", "s3cret")

    assert client.get("/metrics").status_code == status.HTTP_403_FORBIDDEN
    r = client.get("/metrics", headers={"Authorization": "Bearer s3cret"})
    assert r.status_code == status.HTTP_200_OK
