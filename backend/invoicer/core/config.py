from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "invoicer"
    version: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    APP_DATABASE_DSN: str = "sqlite:////tmp/invoicer.db"
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Ledger (QuickBooks Online) OAuth client
    LEDGER_CLIENT_ID: str = ""
    LEDGER_CLIENT_SECRET: str = ""
    LEDGER_REDIRECT_URI: str = ""
    LEDGER_AUTHORIZATION_URL: str = "https://appcenter.intuit.com/connect/oauth2"
    LEDGER_TOKEN_URL: str = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
    LEDGER_API_BASE_URL: str = "https://sandbox-quickbooks.api.intuit.com/v3/company"
    LEDGER_SCOPE: str = "com.intuit.quickbooks.accounting"
    LEDGER_HTTP_TIMEOUT_SECONDS: float = 30.0
    LEDGER_REFRESH_TOKEN_LIFETIME_DAYS: int = 100

    # Master key material for at-rest token encryption
    TOKEN_ENCRYPTION_KEY: str = "change-me-in-production"

    # Invoicing
    INVOICE_NUMBER_PREFIX: str = "INV-"
    PAYMENT_TERMS_DAYS: int = 14

    # Company details printed on invoices
    COMPANY_NAME: str = "Invoicer Ltd"
    COMPANY_ADDRESS: str = ""
    COMPANY_EMAIL: str = ""
    COMPANY_PHONE: str = ""
    COMPANY_WEBSITE: str = ""
    COMPANY_REGISTRATION: str = ""
    BANK_NAME: str = ""
    BANK_SORT_CODE: str = ""
    BANK_ACCOUNT_NUMBER: str = ""

    # SMTP (empty host disables sending)
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_FROM_EMAIL: str = "invoices@example.com"
    SMTP_FROM_NAME: str = "Invoicer Billing"
    SMTP_TIMEOUT_SECONDS: float = 30.0

    @property
    def ledger_configured(self) -> bool:
        return bool(self.LEDGER_CLIENT_ID and self.LEDGER_REDIRECT_URI)


settings = Settings()
