"""Unit tests for client configuration."""

import os
from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from gtm_storage import ClientConfig, ConfigurationError
from gtm_storage.config import DEFAULT_TIMEOUT_SECONDS


@pytest.fixture
def mock_env_vars():
    """Set up storage environment variables for testing."""
    env = {
        'GTM_STORAGE_URL': 'http://127.0.0.1:3000/',
        'GTM_STORAGE_API_KEY': 'env-key',
        'GTM_STORAGE_TIMEOUT': '12.5',
    }
    with patch.dict(os.environ, env, clear=True):
        yield env


class TestFromOptions:
    """Tests for explicit configuration."""

    def test_strips_trailing_slashes(self):
        config = ClientConfig.from_options("http://localhost:8080///")
        assert config.base_url == "http://localhost:8080"

    @pytest.mark.parametrize("timeout", [None, 0])
    def test_default_timeout_applied(self, timeout):
        config = ClientConfig.from_options("http://localhost:8080", timeout=timeout)
        assert config.timeout == DEFAULT_TIMEOUT_SECONDS

    def test_explicit_timeout_kept(self):
        config = ClientConfig.from_options("http://localhost:8080", timeout=5)
        assert config.timeout == 5.0

    def test_negative_timeout_rejected(self):
        with pytest.raises(ConfigurationError) as exc:
            ClientConfig.from_options("http://localhost:8080", timeout=-1)
        assert 'timeout' in str(exc.value)

    @pytest.mark.parametrize("base_url", ["", "/", "   "])
    def test_empty_base_url_rejected(self, base_url):
        with pytest.raises(ConfigurationError):
            ClientConfig.from_options(base_url)

    def test_non_http_scheme_rejected(self):
        with pytest.raises(ConfigurationError) as exc:
            ClientConfig.from_options("ftp://example.com")
        assert 'http' in str(exc.value)

    def test_empty_api_key_means_no_key(self):
        config = ClientConfig.from_options("http://localhost:8080", api_key="")
        assert config.api_key is None

    def test_transport_without_request_rejected(self):
        with pytest.raises(ConfigurationError):
            ClientConfig.from_options("http://localhost:8080", transport=object())

    def test_custom_transport_kept(self):
        transport = MagicMock()
        config = ClientConfig.from_options("http://localhost:8080", transport=transport)
        assert config.transport is transport

    def test_config_is_immutable(self):
        config = ClientConfig.from_options("http://localhost:8080")
        with pytest.raises(ValidationError):
            config.base_url = "http://other"


class TestFromEnv:
    """Tests for environment-based configuration."""

    def test_reads_all_variables(self, mock_env_vars):
        config = ClientConfig.from_env()
        assert config.base_url == 'http://127.0.0.1:3000'
        assert config.api_key == 'env-key'
        assert config.timeout == 12.5

    def test_missing_url(self, mock_env_vars):
        env = mock_env_vars.copy()
        env.pop('GTM_STORAGE_URL')

        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ConfigurationError) as exc:
                ClientConfig.from_env()

            assert 'GTM_STORAGE_URL' in str(exc.value)

    def test_invalid_timeout(self, mock_env_vars):
        with patch.dict(os.environ, {'GTM_STORAGE_TIMEOUT': 'soon'}):
            with pytest.raises(ConfigurationError) as exc:
                ClientConfig.from_env()

            assert 'GTM_STORAGE_TIMEOUT' in str(exc.value)

    def test_optional_variables_absent(self):
        with patch.dict(os.environ, {'GTM_STORAGE_URL': 'https://storage.example.com'}, clear=True):
            config = ClientConfig.from_env()

        assert config.api_key is None
        assert config.timeout == DEFAULT_TIMEOUT_SECONDS
