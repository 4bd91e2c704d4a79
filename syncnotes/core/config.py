import os
from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

load_dotenv()


class Settings(BaseModel):
    """Application settings loaded from environment: OpenAI key and model names, per-call deadlines and retry counts, audio size limit, meeting store path, share-link base URL, SMTP credentials and prompt version.
    Why available: Single source of configuration so the guard policies, extractors, store and notifier agree on limits and endpoints."""
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    transcription_model: str = os.getenv("TRANSCRIPTION_MODEL", "gpt-4o-audio-preview")
    chat_model: str = os.getenv("CHAT_MODEL", "gpt-4o-mini")

    transcription_timeout_seconds: float = float(os.getenv("TRANSCRIPTION_TIMEOUT_SECONDS", "120"))
    transcription_retries: int = int(os.getenv("TRANSCRIPTION_RETRIES", "2"))
    mind_map_timeout_seconds: float = float(os.getenv("MIND_MAP_TIMEOUT_SECONDS", "60"))
    mind_map_retries: int = int(os.getenv("MIND_MAP_RETRIES", "1"))
    chat_timeout_seconds: float = float(os.getenv("CHAT_TIMEOUT_SECONDS", "15"))
    chat_retries: int = int(os.getenv("CHAT_RETRIES", "1"))
    retry_backoff_seconds: float = float(os.getenv("RETRY_BACKOFF_SECONDS", "1.0"))

    max_audio_kb: int = int(os.getenv("MAX_AUDIO_KB", "20480"))  # 20 MB inline audio
    meetings_store_path: str = os.getenv("MEETINGS_STORE_PATH", os.path.join("data", "syncnotes_meetings.json"))
    public_base_url: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000/")
    participant_email_domain: str = os.getenv("PARTICIPANT_EMAIL_DOMAIN", "company.com")

    smtp_host: str = os.getenv("SMTP_HOST", "smtp.gmail.com")
    smtp_port: int = int(os.getenv("SMTP_PORT", "465"))
    smtp_user: str = os.getenv("SMTP_USER", "")
    smtp_pass: str = os.getenv("SMTP_PASS", "")
    email_from: str = os.getenv("EMAIL_FROM", "")

    prompt_version: str = os.getenv("PROMPT_VERSION", "v1")
    log_json: bool = os.getenv("LOG_JSON", "false").lower() == "true"

    @field_validator(
        "transcription_timeout_seconds",
        "mind_map_timeout_seconds",
        "chat_timeout_seconds",
        "retry_backoff_seconds",
        "max_audio_kb",
        "smtp_port",
    )
    @classmethod
    def must_be_positive(cls, v):
        """Ensure deadlines, backoff base, audio limit and SMTP port are positive. Prevents invalid config from env."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("transcription_retries", "mind_map_retries", "chat_retries")
    @classmethod
    def must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v


settings = Settings()
