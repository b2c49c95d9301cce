from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    APP_NAME: str = "ReceiptEngine"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Input limits
    MAX_INPUT_CHARS: int = 20_000

    # Extractor execution
    FIELD_TIME_BUDGET_MS: int = 500
    MAX_WORKERS: int = 4  # 0 runs extractors inline

    # Ranking
    CONFIDENCE_HIGH: float = 0.75
    CONFIDENCE_MEDIUM: float = 0.5
    MIN_CANDIDATE_SCORE: float = 0.1
    OVERLAP_PENALTY: float = 1.0

    # Dates older than this many years are rejected
    DATE_WINDOW_YEARS: int = 20

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()
