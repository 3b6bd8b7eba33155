from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Acquisition
    acquisition_discipline: str = "best_of_all"  # best_of_all | first_viable
    acquisition_max_candidates: int = 6
    acquisition_retry_max: int = 3
    acquisition_backoff_base_ms: int = 250
    acquisition_backoff_max_ms: int = 4000
    acquisition_candidate_timeout_s: float = 30.0
    acquisition_episode_timeout_s: float = 45.0
    acquisition_min_content_chars: int = 100
    acquisition_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    )
    cors_proxy_enabled: bool = True
    cors_proxy_url: str = "https://api.allorigins.win/get?url={url}"

    # Placeholder extraction
    placeholder_min_length: int = 2
    placeholder_max_length: int = 100
    placeholder_max_matches: int = 500

    # Substitution
    value_separator: str = ", "
    no_items_marker: str = "No items available"
    line_items_placeholder: str = "line_items"
    image_default_width: int = 200
    image_default_height: str = "auto"  # "auto" or a pixel count

    # Temporary resources
    temp_resource_ttl_hours: int = 24
    render_timeout_s: float = 60.0
    cleanup_timeout_s: float = 15.0

    # Google APIs (api-access strategy)
    google_access_token: str = ""
    google_docs_base_url: str = "https://docs.googleapis.com/v1"
    google_drive_base_url: str = "https://www.googleapis.com/drive/v3"
    google_probe_timeout_s: float = 5.0
    google_request_timeout_s: float = 30.0

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"
    log_to_file: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
