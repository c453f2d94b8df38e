from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "CODA Statement Service"
    LOG_LEVEL: str = "INFO"

    # Parsing
    # Unknown record types are skipped unless strict parsing is switched on
    CODA_STRICT_PARSING: bool = False

    # Writing
    CODA_WRITER_MODE: str = "canonical"  # "canonical" or "grouped"

    @property
    def grouped_output(self) -> bool:
        """Check if the default writer layout is the grouped (global batch) one."""
        return self.CODA_WRITER_MODE.strip().lower() == "grouped"

    # Statement generation defaults
    CODA_BANK_IDENTIFICATION_NUMBER: str = "300"
    CODA_APPLICATION_CODE: str = "05"
    CODA_BANK_BIC: str = "BBRUBEBB"
    CODA_ACCOUNT_DESCRIPTION: str = "Current account"
    CODA_STATEMENT_NUMBER: int = 1
    CODA_FILE_REFERENCE: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
