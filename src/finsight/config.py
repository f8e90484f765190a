"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # LLM
    openai_api_key: str = Field(default="", description="OpenAI API key (or dummy value for local vLLM)")
    llm_model_name: str = Field(default="gpt-4o-mini", description="LLM model identifier")
    llm_base_url: str = Field(
        default="",
        description=(
            "Base URL for an OpenAI-compatible chat endpoint. Leave empty to "
            "use OpenAI cloud."
        ),
    )
    llm_temperature: float = 0.3
    llm_max_tokens: int = 1000

    # Retrieval / agent
    top_k: int = Field(default=5, description="Number of passages retrieved per question")
    max_tool_iterations: int = Field(
        default=5,
        description="Maximum model turns that may request tool calls before the answer is refused",
    )

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "finsight_documents"
    chroma_persist_directory: str = Field(
        default="",
        description="When set, use an embedded persistent Chroma client instead of the HTTP client",
    )

    # Embedding
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"

    # Row store (file statuses, CPI table, process locks)
    database_url: str = "sqlite:///./finsight.db"

    # Ingestion
    data_sources_path: str = "config/data_sources.yaml"
    chunk_size: int = 1000
    chunk_overlap: int = 200
    load_timeout_seconds: float = 30 * 60
    boot_load_timeout_seconds: float = 5 * 60
    auto_load_on_boot: bool = False

    # Cross-instance coordination
    distributed_lock: bool = False
    server_instance_id: str = ""
    server_heartbeat_interval_seconds: int = 60

    # External data APIs used by the agent tools
    imf_api_base_url: str = "https://www.imf.org/external/datamapper/api/v1"
    exchange_rate_api_base_url: str = "https://api.exchangerate-api.com/v4/latest"
    http_timeout_seconds: float = 30.0

    # HTTP server
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    log_level: str = "INFO"

    # Chat surface
    rate_limit_per_minute: int = 10
    max_message_length: int = 5000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton: import `settings` wherever needed.
settings = Settings()
