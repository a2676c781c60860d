"""
Tests for configuration system
"""
import pytest
from config import (
    Config,
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    get_config
)


@pytest.mark.unit
class TestBaseConfig:
    """Tests for base configuration"""

    def test_base_config_has_secret_key(self):
        """Test that base config has a secret key"""
        config = Config()
        assert hasattr(config, 'SECRET_KEY')
        assert config.SECRET_KEY is not None

    def test_base_config_has_max_content_length(self):
        """Test that base config caps uploads at 16MB"""
        config = Config()
        assert config.MAX_CONTENT_LENGTH == 16 * 1024 * 1024

    def test_base_config_has_cors_settings(self):
        """Test that base config has CORS settings"""
        config = Config()
        assert hasattr(config, 'CORS_ORIGINS')
        assert 'GET' in config.CORS_METHODS
        assert 'PATCH' in config.CORS_METHODS
        assert 'X-Organization-Id' in config.CORS_ALLOW_HEADERS
        assert 'If-None-Match' in config.CORS_ALLOW_HEADERS

    def test_base_config_has_billing_defaults(self):
        """Test quote validity and payment terms defaults"""
        config = Config()
        assert config.QUOTE_VALID_DAYS == 30
        assert config.DEFAULT_PAYMENT_TERMS_DAYS == 30
        assert config.NOTIFICATION_RETENTION_DAYS == 30

    def test_base_config_has_logging_settings(self):
        """Test that base config has logging settings"""
        config = Config()
        assert config.LOG_LEVEL == 'INFO'
        assert config.LOG_FILE == 'app.log'


@pytest.mark.unit
class TestDevelopmentConfig:
    """Tests for development configuration"""

    def test_development_config_has_debug(self):
        config = DevelopmentConfig()
        assert config.DEBUG is True
        assert config.TESTING is False

    def test_development_config_creates_tables(self):
        """Development builds the schema directly instead of through migrations"""
        assert DevelopmentConfig.AUTO_CREATE_TABLES is True

    def test_development_config_has_debug_log_level(self):
        assert DevelopmentConfig().LOG_LEVEL == 'DEBUG'

    def test_development_config_allows_all_cors(self):
        assert '*' in DevelopmentConfig().CORS_ORIGINS


@pytest.mark.unit
class TestProductionConfig:
    """Tests for production configuration"""

    def test_production_config_has_debug_disabled(self):
        config = ProductionConfig()
        assert config.DEBUG is False
        assert config.TESTING is False

    def test_production_config_has_secure_cookies(self):
        """Test that production config has secure cookies"""
        config = ProductionConfig()
        assert config.SESSION_COOKIE_SECURE is True
        assert config.SESSION_COOKIE_HTTPONLY is True
        assert config.SESSION_COOKIE_SAMESITE == 'Lax'

    def test_production_config_has_https_scheme(self):
        assert ProductionConfig().PREFERRED_URL_SCHEME == 'https'


@pytest.mark.unit
class TestTestingConfig:
    """Tests for testing configuration"""

    def test_testing_config_has_testing_enabled(self):
        config = TestingConfig()
        assert config.DEBUG is True
        assert config.TESTING is True

    def test_testing_config_uses_in_memory_sqlite(self):
        """Test runs never touch a real database"""
        assert TestingConfig.DATABASE_URL == 'sqlite://'
        assert TestingConfig.AUTO_CREATE_TABLES is True

    def test_testing_config_disables_outbound_providers(self):
        config = TestingConfig()
        assert config.RESEND_API_KEY is None
        assert config.SMTP_HOST == ''
        assert config.TWILIO_ACCOUNT_SID is None

    def test_testing_config_disables_scheduler_and_api_key(self):
        config = TestingConfig()
        assert config.SCHEDULER_ENABLED is False
        assert config.API_KEY is None


@pytest.mark.unit
class TestGetConfig:
    """Tests for configuration selector"""

    def test_get_config_returns_development_by_default(self, monkeypatch):
        monkeypatch.delenv('FLASK_ENV', raising=False)
        assert get_config() == DevelopmentConfig

    def test_get_config_returns_production_when_set(self, monkeypatch):
        monkeypatch.setenv('FLASK_ENV', 'production')
        assert get_config() == ProductionConfig

    def test_get_config_returns_testing_when_set(self, monkeypatch):
        monkeypatch.setenv('FLASK_ENV', 'testing')
        assert get_config() == TestingConfig

    def test_get_config_falls_back_for_unknown_env(self, monkeypatch):
        monkeypatch.setenv('FLASK_ENV', 'staging')
        assert get_config() == DevelopmentConfig
