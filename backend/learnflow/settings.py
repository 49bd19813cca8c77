from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	# Text model used for grading and email copy
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	# Speech model and prebuilt voice for voice lessons
	gemini_tts_model: str = Field(default="gemini-2.5-flash-preview-tts", validation_alias="GEMINI_TTS_MODEL")
	gemini_tts_voice: str = Field(default="Algenib", validation_alias="GEMINI_TTS_VOICE")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# OpenRouter fallback configuration (optional, text prompts only)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="LearnFlow", validation_alias="OPENROUTER_TITLE")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# Seed admin, created on startup when both are set
	seed_admin_email: str | None = Field(default=None, validation_alias="SEED_ADMIN_EMAIL")
	seed_admin_password: str | None = Field(default=None, validation_alias="SEED_ADMIN_PASSWORD")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Sessions
	exam_question_count: int = Field(default=5, validation_alias="EXAM_QUESTION_COUNT")
	sequence_pause_seconds: float = Field(default=1.0, validation_alias="SEQUENCE_PAUSE_SECONDS")
	recognition_restart_delay: float = Field(default=0.25, validation_alias="RECOGNITION_RESTART_DELAY")
	transcript_clear_delay: float = Field(default=1.0, validation_alias="TRANSCRIPT_CLEAR_DELAY")
	session_idle_minutes: int = Field(default=30, validation_alias="SESSION_IDLE_MINUTES")

	# Voice lesson cache
	tts_cache_max_age_days: int = Field(default=30, validation_alias="TTS_CACHE_MAX_AGE_DAYS")
	tts_attempts: int = Field(default=3, validation_alias="TTS_ATTEMPTS")
	tts_retry_delay: float = Field(default=1.0, validation_alias="TTS_RETRY_DELAY")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
