"""Application configuration using Pydantic Settings."""
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PAYMENT_INSTRUCTIONS = """
Payment Methods:

BANK TRANSFER:
Use the academy bank account shared on your enrolment form.

MOBILE MONEY TRANSFER:
Send to the academy mobile money number and use the student name as reference.

CASH PAYMENT:
Visit the academy front desk.
"""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_name: str = "Academy Payments"
    debug: bool = False
    log_level: str = "INFO"

    # Academy / notifications
    academy_name: str = "Music Academy"
    academy_contact_phone: str = ""
    academy_address: str = ""
    payment_instructions: str = DEFAULT_PAYMENT_INSTRUCTIONS
    currency_symbol: str = "GH₵"

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "academy"

    # JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60

    # Seeded admin (skipped when either is empty)
    admin_email: str = ""
    admin_password: str = ""

    # Flutterwave
    flutterwave_client_id: str = ""
    flutterwave_client_secret: str = ""
    flutterwave_token_url: str = "https://idp.flutterwave.com/realms/flutterwave/protocol/openid-connect/token"
    flutterwave_base_url: str = "https://f4bexperience.flutterwave.com"
    flutterwave_country_code: str = "233"
    flutterwave_currency: str = "GHS"
    http_timeout_seconds: float = 30.0

    # SMTP
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    mail_from: str = ""

    # SMS
    sms_api_url: str = "https://api.smsonlinegh.com/v5/sms/send"
    sms_api_key: str = ""
    sms_sender_id: str = "Academy"

    # AWS S3
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_region: str = "eu-west-1"
    s3_bucket_receipts: str = "academy-receipts"

    # Reminders: keep a bucket retryable when every attempted channel failed
    reminder_retry_undelivered: bool = False

    # CORS (comma-separated origins; "*" for open)
    cors_origins: str = "*"

    @model_validator(mode="after")
    def _validate_production_secrets(self):
        if not self.debug:
            if self.jwt_secret_key in ("change-me-in-production", ""):
                raise ValueError(
                    "JWT_SECRET_KEY must be set to a strong secret when DEBUG is not enabled. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
        return self


settings = Settings()
