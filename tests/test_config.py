import pytest

from sheetcms.config import Settings, _load_settings


def test_missing_sheet_id_is_reported(monkeypatch):
    monkeypatch.delenv("GOOGLE_SHEET_ID", raising=False)
    with pytest.raises(RuntimeError) as exc:
        _load_settings()
    assert "GOOGLE_SHEET_ID" in str(exc.value)


def test_environment_overrides_defaults(monkeypatch):
    monkeypatch.setenv("GOOGLE_SHEET_ID", "abc")
    monkeypatch.setenv("CACHE_TTL_SECONDS", "15")
    monkeypatch.setenv("VERIFY_WRITES", "false")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://a.example, https://b.example")
    cfg = _load_settings()
    assert cfg.CACHE_TTL_SECONDS == 15.0
    assert cfg.VERIFY_WRITES is False
    assert cfg.cors_origins == ["https://a.example", "https://b.example"]
    assert cfg.JWT_ISSUER == "sheetcms"


def test_existing_values_survive_reload(monkeypatch):
    monkeypatch.setenv("GOOGLE_SHEET_ID", "abc")
    monkeypatch.delenv("MAX_PAGE_LIMIT", raising=False)
    previous = Settings(GOOGLE_SHEET_ID="abc", MAX_PAGE_LIMIT=50)
    assert _load_settings(previous).MAX_PAGE_LIMIT == 50


def test_page_limits_validated():
    with pytest.raises(ValueError):
        Settings(GOOGLE_SHEET_ID="abc", DEFAULT_PAGE_LIMIT=500, MAX_PAGE_LIMIT=100)
