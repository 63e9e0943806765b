"""Environment-based configuration for the health-data parser service."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Health parser settings, loaded from environment variables."""

    # Server
    PORT: int = 8092
    LOG_LEVEL: str = "INFO"

    # "local" enables in-process backends (Ollama, local uploads dir)
    DEPLOYMENT_ENV: str = "local"

    # Vision backends
    OLLAMA_URL: str = "http://ollama:11434"
    OLLAMA_MODEL: str = "llama3.2-vision"
    OPENAI_API_URL: str = "https://api.openai.com/v1"
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o"

    # Document conversion / OCR backend
    DOCLING_URL: str = "http://docling-serve:5001"
    DOCLING_TIMEOUT_SECONDS: float = 300.0

    # Inference timeouts and retry
    INFERENCE_TIMEOUT_SECONDS: float = 300.0  # 5 min per call
    HEALTH_CHECK_TIMEOUT_SECONDS: float = 10.0
    INFERENCE_RETRY_ATTEMPTS: int = 3
    INFERENCE_RETRY_DELAY: float = 2.0  # multiplied by the attempt number
    INFERENCE_TEMPERATURE: float = 0.1

    # Per-stage concurrency limits
    TEXT_PARSE_CONCURRENCY: int = 2
    IMAGE_FETCH_CONCURRENCY: int = 4
    LOCAL_INFERENCE_CONCURRENCY: int = 1
    REMOTE_INFERENCE_CONCURRENCY: int = 4

    # Rasterization
    RENDER_DPI: int = 200
    MAX_PAGE_DIMENSION: int = 2048

    # Page image storage
    UPLOAD_DIR: str = "./public/uploads"
    BLOB_STORE_URL: str = ""
    BLOB_STORE_TOKEN: str = ""

    model_config = {"env_prefix": "", "case_sensitive": True}

    @property
    def is_local(self) -> bool:
        return self.DEPLOYMENT_ENV == "local"


settings = Settings()
