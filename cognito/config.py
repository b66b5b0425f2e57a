from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Providers
    default_host: str = "openai"
    default_model: str = "gpt-4o-mini"
    openai_api_key: str = ""
    groq_api_key: str = ""
    gemini_api_key: str = ""
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    ollama_url: str = "http://localhost:11434"
    lmstudio_url: str = "http://localhost:1234"
    custom_endpoint: str = ""  # OpenAI-compatible base URL, e.g. http://host:8000/v1
    custom_api_key: str = ""
    llm_request_timeout_s: float = 120.0

    # Search
    google_api_key: str = ""  # Google Custom Search, optional
    google_cx: str = ""
    wikipedia_api_url: str = "https://search.genie.stanford.edu/wikipedia_20250320"
    search_timeout_s: float = 15.0
    page_scrape_timeout_s: float = 12.0
    search_attempts_per_engine: int = 2
    serp_max_links_to_visit: int = 3
    http_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/136.0.0.0 Safari/537.36"
    )

    # Orchestration
    plan_max_attempts: int = 2
    max_tool_rounds: int = 8

    # App
    cors_origins: str = "http://localhost:3000"
    log_dir: str = "logs"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
