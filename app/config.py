from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Groq
    groq_api_key: str = ""
    default_model: str = "llama-3.3-70b-versatile"
    vision_model: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    chat_max_tokens: int = 2048
    chat_temperature: float = 0.7

    # Auth (bearer JWTs issued by the identity provider)
    jwt_secret: str = "change-me"
    jwt_audience: str = "authenticated"

    # Access grants
    grant_duration_hours: int = 24
    verification_token_ttl_minutes: int = 30

    # Links
    public_base_url: str = "http://127.0.0.1:8000"
    app_url: str = "http://127.0.0.1:5173"
    shortener_api_url: str = ""
    shortener_api_key: str = ""

    # Storage
    database_path: str = "edu_portal.db"
    media_root: str = "media"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
