import pytest

from tradefeed.adapters.env_provider import EnvSecretsProvider, MissingSecretError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for suffix in ("SSO_CLIENT_ID", "SSO_CLIENT_SECRET", "TBWA_USERNAME", "TBWA_PASSWORD"):
        monkeypatch.delenv(f"TRADEFEED_{suffix}", raising=False)


def test_get_returns_env_value(monkeypatch):
    monkeypatch.setenv("TRADEFEED_SSO_CLIENT_ID", "tradefeed-client")

    provider = EnvSecretsProvider()

    assert provider.get("client_id") == "tradefeed-client"


def test_build_in_credentials(monkeypatch):
    monkeypatch.setenv("TRADEFEED_TBWA_USERNAME", "admin")
    monkeypatch.setenv("TRADEFEED_TBWA_PASSWORD", "hunter2")
    provider = EnvSecretsProvider()

    assert provider.get("username") == "admin"
    assert provider.get("password") == "hunter2"


def test_missing_secret_raises_for_unknown_name(monkeypatch):
    monkeypatch.setenv("TRADEFEED_SSO_CLIENT_ID", "tradefeed-client")
    provider = EnvSecretsProvider()

    with pytest.raises(MissingSecretError) as exc:
        provider.get("nonexistent")

    assert "nonexistent" in str(exc.value)
    assert exc.value.env_var is None


def test_missing_secret_names_env_var():
    provider = EnvSecretsProvider()

    with pytest.raises(MissingSecretError) as exc:
        provider.get("client_secret")

    assert "client_secret" in str(exc.value)
    assert "TRADEFEED_SSO_CLIENT_SECRET" in str(exc.value)


def test_empty_value_treated_as_missing(monkeypatch):
    monkeypatch.setenv("TRADEFEED_SSO_CLIENT_SECRET", "")
    provider = EnvSecretsProvider()

    with pytest.raises(MissingSecretError):
        provider.get("client_secret")


def test_custom_prefix_and_allowlist(monkeypatch):
    monkeypatch.setenv("MY_APP_TOKEN", "token-123")
    provider = EnvSecretsProvider(prefix="MY_", allowed={"app_token": "APP_TOKEN"})

    assert provider.get("app_token") == "token-123"
    assert provider.env_var("client_id") == "MY_SSO_CLIENT_ID"


def test_empty_prefix_rejected():
    with pytest.raises(ValueError):
        EnvSecretsProvider(prefix="")
