from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Chat-completion gateway used by the AI tutor (OpenAI-compatible endpoint)
	completion_api_key: str | None = Field(default=None, validation_alias="COMPLETION_API_KEY")
	completion_base_url: str = Field(default="https://ai.gateway.lovable.dev/v1/chat/completions", validation_alias="COMPLETION_BASE_URL")
	completion_model: str = Field(default="google/gemini-2.5-flash", validation_alias="COMPLETION_MODEL")
	completion_max_tokens: int = Field(default=2048, validation_alias="COMPLETION_MAX_TOKENS")
	completion_temperature: float = Field(default=0.7, validation_alias="COMPLETION_TEMPERATURE")

	# OpenRouter fallback configuration (optional)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="AdaptLearn", validation_alias="OPENROUTER_TITLE")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# Seed user, created at startup when both values are set
	seed_username: str | None = Field(default=None, validation_alias="SEED_USERNAME")
	seed_password_plain: str | None = Field(default=None, validation_alias="SEED_PASSWORD")
	# Accounts registered under this username get the admin role
	admin_username: str | None = Field(default=None, validation_alias="ADMIN_USERNAME")
	# Tutor requests allowed per user
	default_requests_limit: int = Field(default=1000, validation_alias="DEFAULT_REQUESTS_LIMIT")

	# Quiz and exam policy
	violation_threshold: int = Field(default=3, validation_alias="VIOLATION_THRESHOLD")
	violation_grace_seconds: float = Field(default=3.0, validation_alias="VIOLATION_GRACE_SECONDS")
	secure_exam_minutes: int = Field(default=30, validation_alias="SECURE_EXAM_MINUTES")
	recommendation_priority: int = Field(default=10, validation_alias="RECOMMENDATION_PRIORITY")
	# Exam sessions still active after this many hours are closed by the cleanup loop
	stale_exam_hours: int = Field(default=12, validation_alias="STALE_EXAM_HOURS")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
