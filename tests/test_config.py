"""
Configuration Tests
===================
"""

from pathlib import Path

import pytest

from kablan.config import ClientConfig, Config, ServiceConfig, StorageConfig


class TestEnvironment:
    """Settings are read from the environment"""

    def test_storage_defaults(self, monkeypatch):
        monkeypatch.delenv("KABLAN_DATA_DIRS", raising=False)
        storage = StorageConfig()
        assert storage.data_dirs == [Path("data"), Path("public/data"), Path("dist/data")]
        assert storage.backup_keep == 50
        assert storage.backup_retention_days == 30

    def test_data_dirs_from_env(self, monkeypatch):
        monkeypatch.setenv("KABLAN_DATA_DIRS", " /srv/a , /srv/b ,")
        assert StorageConfig().data_dirs == [Path("/srv/a"), Path("/srv/b")]

    def test_port_fallback(self, monkeypatch):
        monkeypatch.delenv("SERVICE_PORT", raising=False)
        monkeypatch.setenv("PORT", "8080")
        assert ServiceConfig().port == 8080

    def test_client_url_trailing_slash(self, monkeypatch):
        monkeypatch.setenv("KABLAN_API_URL", "http://localhost:3001/")
        assert ClientConfig().api_url == "http://localhost:3001"


class TestValidation:
    """Invalid settings are rejected at load time"""

    def test_invalid_backup_keep(self, monkeypatch):
        monkeypatch.setenv("KABLAN_BACKUP_KEEP", "0")
        with pytest.raises(ValueError):
            Config.load()

    def test_invalid_timeout(self):
        with pytest.raises(ValueError):
            ClientConfig(request_timeout=0).validate()


class TestServiceEntryPoint:
    """uvicorn receives the service settings"""

    @pytest.fixture
    def uvicorn_calls(self, monkeypatch, tmp_path):
        from kablan.service import main

        calls = []
        monkeypatch.setattr(main.uvicorn, "run", lambda target, **kwargs: calls.append((target, kwargs)))
        monkeypatch.setenv("KABLAN_DATA_DIRS", str(tmp_path / "data"))
        monkeypatch.delenv("LOG_FILE", raising=False)
        return main, calls

    def test_reload_uses_import_string(self, uvicorn_calls, monkeypatch):
        main, calls = uvicorn_calls
        monkeypatch.setenv("SERVICE_RELOAD", "true")
        main.run()
        target, kwargs = calls[0]
        assert target == "kablan.service.app:app"
        assert kwargs["reload"] is True

    def test_without_reload_passes_app(self, uvicorn_calls, monkeypatch):
        main, calls = uvicorn_calls
        monkeypatch.setenv("SERVICE_RELOAD", "false")
        monkeypatch.setenv("SERVICE_PORT", "4010")
        main.run()
        target, kwargs = calls[0]
        assert not isinstance(target, str)
        assert kwargs["reload"] is False
        assert kwargs["port"] == 4010
