from checkout_ledger.config import Config


def test_defaults(monkeypatch):
    for name in ("LEDGER_NAME", "HTTP_HOST", "HTTP_PORT", "LOG_LEVEL", "MAX_PAGE_SIZE"):
        monkeypatch.delenv(name, raising=False)

    config = Config()

    assert config.ledger_name == "library"
    assert config.http_host == "0.0.0.0"
    assert config.http_port == 8080
    assert config.log_level == "INFO"
    assert config.max_page_size == 500


def test_env_overrides_and_page_size_clamp(monkeypatch):
    monkeypatch.setenv("LEDGER_NAME", "branch-7")
    monkeypatch.setenv("HTTP_PORT", "9001")
    monkeypatch.setenv("MAX_PAGE_SIZE", "0")

    config = Config()

    assert config.ledger_name == "branch-7"
    assert config.http_port == 9001
    assert config.max_page_size == 1
