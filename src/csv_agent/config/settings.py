"""Configuration settings for the CSV agent server."""
from typing import Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_UPLOAD_MAX_BYTES = 20 * 1024 * 1024


class ServerConfig(BaseSettings):
    """Configuration class to store server configurations.

    Environment Variables:
        LLM_PROVIDER: LLM provider to use, "openai" or "anthropic" (default: openai)
        LLM_API_KEY: API key for the provider (falls back to OPENAI_API_KEY / ANTHROPIC_API_KEY)
        LLM_MODEL: Model name override (provider default when unset)
        LLM_TEMPERATURE: Sampling temperature (default: 0.0)
        UPLOAD_MAX_BYTES: Maximum accepted CSV size in bytes (default: 20MiB)
        UPLOADS_DIR: Directory holding uploaded CSV files (default: ./uploads)
        SUPABASE_URL: Supabase project URL
        SUPABASE_KEY: Supabase service role or anon key
        MAX_TOOL_ROUNDS: Maximum tool-call rounds per agent execution (default: 5)
        URL_FETCH_TIMEOUT: Timeout in seconds for fetching CSVs by URL (default: 30)
        MAX_RESULT_ROWS: Maximum rows returned to the model per SQL query (default: 500)
        LOG_LEVEL: Logging level (default: INFO)
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    llm_provider: Literal["openai", "anthropic"] = Field(default="openai", description="LLM provider")
    llm_api_key: Optional[str] = Field(default=None, description="API key for the LLM provider")
    llm_model: Optional[str] = Field(default=None, description="Model name override")
    llm_temperature: float = Field(default=0.0, ge=0.0, le=2.0, description="Sampling temperature")
    upload_max_bytes: int = Field(default=DEFAULT_UPLOAD_MAX_BYTES, gt=0, description="Maximum upload size in bytes")
    uploads_dir: str = Field(default="uploads", description="Directory for uploaded CSV files")
    supabase_url: Optional[str] = Field(default=None, description="Supabase project URL")
    supabase_key: Optional[str] = Field(default=None, description="Supabase key")
    max_tool_rounds: int = Field(default=5, ge=1, description="Tool-call round cap per execution")
    url_fetch_timeout: float = Field(default=30.0, gt=0, description="URL ingestion timeout in seconds")
    max_result_rows: int = Field(default=500, ge=1, description="Rows returned per SQL tool call")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator('llm_provider', mode='before')
    @classmethod
    def normalize_provider(cls, v):
        """Accept provider names in any case."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator('llm_api_key', 'llm_model', 'supabase_url', 'supabase_key')
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank optional strings as unset."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator('uploads_dir')
    @classmethod
    def validate_uploads_dir(cls, v: str) -> str:
        """Validate uploads_dir is not empty."""
        if not v or not v.strip():
            raise ValueError("Uploads directory cannot be empty")
        return v.strip()

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known logging level name."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of {allowed}, got: {v}")
        return v.upper()

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Create configuration from environment variables."""
        return cls()
