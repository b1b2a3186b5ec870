from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Application settings
    APP_NAME: str = "Back Office Identity"
    APP_VERSION: str = "1.0.0"

    # Database URL (read from .env file)
    DATABASE_URL: str = ''

    # Session token settings
    JWT_SECRET_KEY: str = 'default-secret-key-change-in-production'
    JWT_ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REMEMBER_ME_EXPIRE_DAYS: int = 30

    # Local session blob used by scripts and workers
    SESSION_FILE_PATH: str = '.backoffice_session.json'

    # External auth provider (Firebase Identity Toolkit)
    FIREBASE_API_KEY: str = ''
    AUTH_PROVIDER_TIMEOUT: float = 10.0

    # Employee id namespaces
    EMPLOYEE_ID_CURRENT_PREFIX: str = '91'
    EMPLOYEE_ID_LEGACY_PATTERN: str = r'^\d{4}$'
    EMPLOYEE_ID_BASE_OFFSET: int = 1000

    # Identity migrator
    MIGRATOR_ENABLED: bool = True
    MIGRATION_BATCH_LIMIT: int = 450
    MIGRATION_CLAIM_TTL_SECONDS: int = 300

    # Restricted roles with an empty branch list see no branches unless this is set
    EMPTY_SCOPE_MEANS_ALL_BRANCHES: bool = False

    # First-run bootstrap of the staff directory
    INITIAL_ADMIN_EMAIL: str = 'admin@example.com'
    INITIAL_ADMIN_PASSWORD: str = 'admin123456'

    # Client URL for CORS
    CLIENT_URL: str = 'http://localhost:3000'

    model_config = SettingsConfigDict(env_file=".env", extra='allow')

    @property
    def ASYNC_DB_URL(self):
        if self.ENV_MODE == "dev":
            # Check if we have a PostgreSQL DATABASE_URL in .env for dev mode
            if self.DATABASE_URL and self.DATABASE_URL.startswith('postgresql'):
                URL_split = self.DATABASE_URL.split("://")
                return f"{URL_split[0]}+psycopg://{URL_split[1]}"
            else:
                # Fall back to SQLite for dev mode if no PostgreSQL URL provided
                return "sqlite+aiosqlite:///./dev.db"
        else:
            if self.DATABASE_URL:
                URL_split = self.DATABASE_URL.split("://")
                return f"{URL_split[0]}+psycopg://{URL_split[1]}"
            else:
                return '{}+psycopg://{}:{}@{}:{}/{}'.format(
                    self.DB_ENGINE,
                    self.DB_USERNAME,
                    self.DB_PASS,
                    self.DB_HOST,
                    self.DB_PORT,
                    self.DB_NAME
                )

    @property
    def API_BASE_URL(self) -> str:
        if self.ENV_MODE == "dev":
            return 'http://localhost:8000/'
        return self.HOST_URL

class DevSettings(Settings):
    # Environment mode: 'dev' or 'prod'
    ENV_MODE: str = 'dev'

    model_config = SettingsConfigDict(env_file=".env", extra='allow')

class ProdSettings(Settings):
    # Environment mode: 'dev' or 'prod'
    ENV_MODE: str = 'prod'

    # Database settings for production
    DB_ENGINE: str = 'postgresql'
    DB_USERNAME: str = ''
    DB_PASS: str = ''
    DB_HOST: str = ''
    DB_PORT: str = ''
    DB_NAME: str = ''

    # Define HOST_URL based on environment mode
    HOST_URL: str = ''

    model_config = SettingsConfigDict(env_file=".env", extra='allow')

def get_settings(env_mode: str = "dev"):
    if env_mode == "dev":
        return DevSettings()
    return ProdSettings()
