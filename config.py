# config.py
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load .env file
load_dotenv()

class Settings(BaseSettings):
    # Database settings
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = ""
    DB_PASSWORD: str = ""
    DB_NAME: str = ""

    # Redis settings
    REDIS_URL: str = "redis://localhost"

    # Pool settings
    POOL_MIN_SIZE: int = 2
    POOL_MAX_SIZE: int = 8
    CONNECTION_TIMEOUT: int = 10
    COMMAND_TIMEOUT: int = 60
    STATEMENT_TIMEOUT: int = 30000

    # API settings
    DEBUG: bool = True
    THROTTLE_RATE: int = 50  # requests per minute on write routes
    ALLOWED_ORIGINS: str = ""  # Comma-separated list of allowed origins in production

    # Monitoring settings
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: str = ""

    # Notification settings
    NOTIFICATION_WINDOW: int = 300  # 5 minutes
    MAX_SIMILAR_NOTIFICATIONS: int = 3

    # Health check settings
    HEALTH_CHECK_INTERVAL: int = 30  # seconds
    MAX_UNHEALTHY_COUNT: int = 3

    # Reward settings
    # must stay positive: settled sessions are told apart by tokens_earned > 0
    BENCHMARK_REWARD_RATE: float = Field(0.5, gt=0)
    MINING_REWARD_RATE: float = Field(1.0, gt=0)
    MINIMUM_WITHDRAWAL: float = 100.0
    TOKEN_TOTAL_SUPPLY: float = 1_000_000.0

    # Scheduled jobs (seconds)
    DISTRIBUTION_INTERVAL: int = 60
    DISTRIBUTION_BATCH_SIZE: int = 100
    POOL_STATS_INTERVAL: int = 3600
    WITHDRAWAL_RECOVERY_INTERVAL: int = 60
    STALE_PROCESSING_AFTER: int = 600

    # Transfer settings
    TRANSFER_RELAY_URL: str = ""  # empty -> simulated transfers
    TRANSFER_RELAY_API_KEY: str = ""
    TRANSFER_TIMEOUT: float = 30.0
    SIMULATED_TRANSFER_DELAY: float = 5.0

    # Auth settings
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_DAYS: int = 7

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def get_database_url(self) -> str:
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

# Create settings instance
settings = Settings()
