"""Tests for backend settings resolution and application startup."""

from types import SimpleNamespace

import pytest

import app
import backend_connection
from backend_connection import BackendSettings, create_repository, get_backend_settings, is_demo_mode
from exceptions import ConfigurationError
from repository import DemoRepository, RealtimeListener, SupabaseRepository


@pytest.fixture
def no_secrets(monkeypatch):
    """Replace streamlit with an object that has empty secrets."""
    monkeypatch.setattr(backend_connection, "st", SimpleNamespace(secrets={}))


def test_settings_from_environment(no_secrets, monkeypatch):
    """Environment keys are used when no secrets are present."""
    monkeypatch.setattr(backend_connection.config, "SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setattr(backend_connection.config, "SUPABASE_ANON_KEY", "anon")

    settings = get_backend_settings()

    assert settings.source == "env"
    assert settings.is_configured
    assert is_demo_mode(settings) is False


def test_secrets_take_priority(monkeypatch):
    """Streamlit secrets win over the environment."""
    secrets = {"supabase": {"url": "https://secret.supabase.co", "anon_key": "secret"}}
    monkeypatch.setattr(backend_connection, "st", SimpleNamespace(secrets=secrets))
    monkeypatch.setattr(backend_connection.config, "SUPABASE_URL", "https://env.supabase.co")
    monkeypatch.setattr(backend_connection.config, "SUPABASE_ANON_KEY", "env")

    settings = get_backend_settings()

    assert settings.url == "https://secret.supabase.co"
    assert settings.source == "secrets"


@pytest.mark.parametrize("url,key", [("", ""), ("https://example.supabase.co", ""), ("", "anon")])
def test_missing_key_means_demo_mode(no_secrets, monkeypatch, url, key):
    """Either setting missing falls back to demo mode."""
    monkeypatch.setattr(backend_connection.config, "SUPABASE_URL", url)
    monkeypatch.setattr(backend_connection.config, "SUPABASE_ANON_KEY", key)

    assert is_demo_mode() is True


def test_create_repository_demo(tmp_path):
    """Unconfigured settings produce a seeded demo repository."""
    repo = create_repository(BackendSettings(), demo_db_path=str(tmp_path / "demo.db"))
    try:
        assert isinstance(repo, DemoRepository)
        assert repo.demo_mode is True
        assert repo.get_all_incentives()
    finally:
        repo.close()


def test_create_repository_live(monkeypatch, supabase_client):
    """Configured settings build a SupabaseRepository with a realtime listener."""
    import supabase

    created = {}

    def fake_create_client(url, key):
        created["args"] = (url, key)
        return supabase_client

    monkeypatch.setattr(supabase, "create_client", fake_create_client)
    repo = create_repository(BackendSettings(url="https://example.supabase.co", key="anon", source="env"))

    assert isinstance(repo, SupabaseRepository)
    assert repo.client is supabase_client
    assert created["args"] == ("https://example.supabase.co", "anon")
    assert isinstance(repo.realtime, RealtimeListener)


def test_live_repository_realtime_uses_async_client(monkeypatch, supabase_client, async_client):
    """The change feed opens on a client from acreate_client, not the sync client."""
    import supabase

    created = []

    async def fake_acreate_client(url, key):
        created.append((url, key))
        return async_client

    monkeypatch.setattr(supabase, "create_client", lambda url, key: supabase_client)
    monkeypatch.setattr(supabase, "acreate_client", fake_acreate_client)
    repo = create_repository(BackendSettings(url="https://example.supabase.co", key="anon", source="env"))
    try:
        channel = repo.subscribe(lambda event: None)

        assert created == [("https://example.supabase.co", "anon")]
        assert channel.subscribed
        assert async_client.channels == [channel]

        repo.unsubscribe(channel)
        assert async_client.removed == [channel]
    finally:
        repo.close()


def test_start_loads_and_subscribes(fake_repo):
    """start() performs the first load and opens the realtime feed."""
    session = app.start(repo=fake_repo, configure_logging=False)

    assert session.state.loading is False
    assert session.state.totals[1] == 4
    assert len(fake_repo.handlers) == 1

    session.stop()
    assert fake_repo.handlers == {}


def test_start_without_realtime(fake_repo):
    session = app.start(repo=fake_repo, realtime=False, configure_logging=False)
    assert fake_repo.handlers == {}
    assert session.state.error is None


def test_create_repository_rejects_bad_settings(monkeypatch):
    """Client construction errors become ConfigurationError."""
    import supabase

    def broken_create_client(url, key):
        raise ValueError("Invalid URL")

    monkeypatch.setattr(supabase, "create_client", broken_create_client)

    with pytest.raises(ConfigurationError) as exc_info:
        create_repository(BackendSettings(url="not-a-url", key="anon", source="env"))
    assert "Invalid URL" in exc_info.value.message
