"""
Unit tests for secret resolvers.
"""

from unittest.mock import Mock, patch
from requests.exceptions import ConnectionError
from services.compiler.secrets import EnvSecretResolver, HttpSecretResolver


def test_env_resolver_returns_name_only_when_present():
    resolver = EnvSecretResolver({"API_KEY": "secret-value"})

    assert resolver.resolve("API_KEY") == "API_KEY"
    assert resolver.resolve("OTHER") is None


@patch("services.compiler.secrets.requests.get")
def test_http_resolver_returns_reference(mock_get):
    mock_get.return_value = Mock(status_code=200, json=Mock(return_value={"ref": "vault/api-key"}))

    ref = HttpSecretResolver(base_url="http://secrets:8100/").resolve("API_KEY")

    assert ref == "vault/api-key"
    mock_get.assert_called_once_with("http://secrets:8100/secrets/API_KEY", timeout=5)


@patch("services.compiler.secrets.requests.get")
def test_http_resolver_unknown_secret(mock_get):
    mock_get.return_value = Mock(status_code=404)

    assert HttpSecretResolver(base_url="http://secrets:8100").resolve("API_KEY") is None


@patch("services.compiler.secrets.requests.get")
def test_http_resolver_service_down_is_unresolved(mock_get):
    mock_get.side_effect = ConnectionError("refused")

    assert HttpSecretResolver(base_url="http://secrets:8100").resolve("API_KEY") is None
