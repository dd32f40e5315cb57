from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # --- Service ---
    PROJECT_NAME: str = "Sanatan_Store"
    ENVIRONMENT: str = "development"  # development, production, test
    LOG_LEVEL: str = "INFO"

    # --- Storage ---
    DATABASE_URL: str = "sqlite:///./sanatan_store.db"
    REDIS_URL: str | None = None
    OTP_STORE_BACKEND: str = "memory"  # redis, memory (production requires redis)

    # --- Sessions ---
    SESSION_SECRET: str | None = None
    SESSION_TTL_SECONDS: int = 60 * 60 * 24 * 7

    # --- Providers (all optional here, checked when the adapters are built) ---
    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_FROM_NUMBER: str | None = None

    RAZORPAY_KEY_ID: str | None = None
    RAZORPAY_KEY_SECRET: str | None = None
    RAZORPAY_BASE_URL: str = "https://api.razorpay.com/v1"

    RESEND_API_KEY: str | None = None
    RESEND_BASE_URL: str = "https://api.resend.com"
    EMAIL_FROM: str = "श्री Sanatan <onboarding@resend.dev>"
    SUPPORT_EMAIL: str = "support@shrisanatan.com"

    PROVIDER_TIMEOUT_SECONDS: float = 5.0

    # --- OTP ---
    OTP_TTL_SECONDS: int = 5 * 60
    OTP_MAX_SENDS: int = 3
    OTP_SEND_WINDOW_SECONDS: int = 10 * 60
    OTP_MAX_VERIFY_ATTEMPTS: int = 5
    OTP_LOCKOUT_SECONDS: int = 15 * 60

    # --- Checkout ---
    MIN_ORDER_AMOUNT: int = 399
    MAX_ORDER_AMOUNT: int = 10_000_000
    CURRENCY: str = "INR"
    STORE_TIMEZONE: str = "Asia/Kolkata"

    # --- Configuration ---
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"  # other services share the same .env
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

settings = Settings()
