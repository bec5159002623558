from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pathlib import Path

# Find the backend directory (where .env is located)
BACKEND_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(BACKEND_DIR / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # API Settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Dental Research Cohort Engine"

    # CORS
    FRONTEND_URL: str = "http://localhost:3000"
    ALLOWED_ORIGINS: Optional[str] = None

    # Record store: "supabase" for the managed backend, "memory" for local runs
    RECORD_STORE: str = "supabase"
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None
    SUPABASE_SCHEMA: str = "api"
    PROFILES_TABLE: str = "public.profiles"

    # Row caps for the enrichment pipeline
    PATIENT_FETCH_LIMIT: int = 500
    CONSULTATION_FETCH_LIMIT: int = 1000
    TREATMENT_FETCH_LIMIT: int = 1000
    APPOINTMENT_FETCH_LIMIT: int = 1000
    TOOTH_DIAGNOSIS_FETCH_LIMIT: int = 2000

    # Anonymized id assignment retries on unique-constraint conflicts
    COHORT_ID_MAX_ATTEMPTS: int = 5

    LOG_LEVEL: str = "INFO"


settings = Settings()
