from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List, Optional
from pathlib import Path

class Settings(BaseSettings):
    app_name: str = Field(default="Gatepass API", alias="APP_NAME")
    env: str = Field(default="dev", alias="ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    secret_key: str = Field(default="devsecret", alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    # Entry tokens (QR payload). The secret is read once here and handed to the codec.
    ticket_secret_key: str = Field(default="dev-ticket-secret", alias="TICKET_SECRET_KEY")
    entry_token_ttl_seconds: int = Field(default=24 * 60 * 60, alias="ENTRY_TOKEN_TTL_SECONDS")
    entry_token_leeway_seconds: int = Field(default=60, alias="ENTRY_TOKEN_LEEWAY_SECONDS")
    entry_token_refresh_seconds: int = Field(default=45, alias="ENTRY_TOKEN_REFRESH_SECONDS")
    # Transfers
    transfer_allow_free_tickets: bool = Field(default=True, alias="TRANSFER_ALLOW_FREE_TICKETS")
    default_phone_country_code: str = Field(default="226", alias="DEFAULT_PHONE_COUNTRY_CODE")
    # Contact verification codes (e-mail / SMS)
    contact_code_ttl_seconds: int = Field(default=10 * 60, alias="CONTACT_CODE_TTL_SECONDS")
    contact_code_max_attempts: int = Field(default=5, alias="CONTACT_CODE_MAX_ATTEMPTS")
    # Notifications
    notification_max_attempts: int = Field(default=3, alias="NOTIFICATION_MAX_ATTEMPTS")
    notification_retry_delay_seconds: float = Field(default=2.0, alias="NOTIFICATION_RETRY_DELAY_SECONDS")
    # Raw env values (strings), we parse them to lists via properties to avoid JSON decoding errors
    admin_emails_raw: Optional[str] = Field(default=None, alias="ADMIN_EMAILS")
    scanner_emails_raw: Optional[str] = Field(default=None, alias="SCANNER_EMAILS")
    cors_origins_raw: Optional[str] = Field(default=None, alias="CORS_ORIGINS", description="Comma or space separated list of allowed CORS origins")
    # Seed users (dev/demo convenience)
    seed_admin_email: Optional[str] = Field(default=None, alias="SEED_ADMIN_EMAIL")
    seed_admin_password: Optional[str] = Field(default=None, alias="SEED_ADMIN_PASSWORD")

    class Config:
        # Load env from backend/.env regardless of CWD
        env_file = str(Path(__file__).resolve().parents[2] / ".env")
        case_sensitive = False

    def _parse_list(self, v: Optional[str]) -> List[str]:
        if v is None:
            return []
        s = v.strip()
        if not s:
            return []
        if s.startswith("[") and s.endswith("]"):
            try:
                import json
                loaded = json.loads(s)
                if isinstance(loaded, list):
                    return [str(e).strip() for e in loaded if str(e).strip()]
            except ValueError:
                pass
        return [e.strip() for e in s.replace(" ", ",").split(",") if e.strip()]

    @property
    def admin_emails(self) -> List[str]:
        return [e.lower() for e in self._parse_list(self.admin_emails_raw)]

    @property
    def scanner_emails(self) -> List[str]:
        return [e.lower() for e in self._parse_list(self.scanner_emails_raw)]

    @property
    def cors_origins(self) -> List[str]:
        items = self._parse_list(self.cors_origins_raw)
        # Fallback dev defaults if none provided
        if not items:
            return ["http://localhost:5173", "http://127.0.0.1:5173"]
        # Dev convenience: ensure both localhost and 127.0.0.1 variants for same ports
        augmented = set(items)
        for origin in items:
            if origin.startswith("http://localhost:"):
                augmented.add("http://127.0.0.1:" + origin.rsplit(":", 1)[1])
            if origin.startswith("http://127.0.0.1:"):
                augmented.add("http://localhost:" + origin.rsplit(":", 1)[1])
        return list(augmented)

    @property
    def is_prod(self) -> bool:
        return self.env.lower() == "prod"

settings = Settings()  # type: ignore
