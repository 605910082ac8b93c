from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import SecretStr


class Settings(BaseSettings):
    # Generation capability (OpenAI-compatible chat completions)
    openai_api_key: SecretStr = SecretStr("")
    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1/chat/completions"
    llm_timeout: float = 60.0
    llm_temperature: float = 0.0

    embedding_model: str = "text-embedding-3-small"
    embedding_base_url: str = "https://api.openai.com/v1/embeddings"

    # Schema introspection + query execution endpoint
    datasource_base_url: str = "http://localhost:8080/api/datasource"
    datasource_api_key: SecretStr = SecretStr("")
    datasource_timeout: float = 30.0

    snapshot_dir: str = "./data/snapshots"

    max_csv_bytes: int = 100 * 1024 * 1024
    csv_sample_size: int = 50

    context_top_k: int = 50
    context_max_fields_per_table: int = 200

    tool_loop_max_steps: int = 5
    enable_schema_exploration: bool = False

    # 0.0 disables the confidence gate
    min_plan_confidence: float = 0.0

    default_namespace: str = "public"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
