from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_path: Path = Path.home() / "OfferFlow"
    api_prefix: str = "/api/v1"
    host: str = "127.0.0.1"
    port: int = 8000

    background_check_url: str = "http://localhost:8001"
    # Document generation and email delivery are served by the same offer-letter API.
    offer_api_url: str = "http://localhost:8002"
    adapter_timeout_seconds: float = 30.0
    # Offer templates are uploaded as DOCX; cap them before forwarding.
    max_template_bytes: int = 10 * 1024 * 1024  # 10 MiB

    company_name: str = "Your Company Name"
    offer_start_offset_days: int = 30
    response_window_business_days: int = 5
    default_salary: str = "75000"

    @property
    def db_path(self) -> Path:
        return self.data_path / "offerflow.sqlite"

    model_config = {"env_prefix": "OFFERFLOW_"}


settings = Settings()
