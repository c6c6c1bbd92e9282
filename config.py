"""
Centralized configuration for the marketplace API.
Reads from environment variables (and a local .env file) with sensible defaults.
"""
import os
import logging
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env file variables, but do not override existing environment variables
load_dotenv(override=False)


class Settings:
    # --- Hosted auth/data store ---
    SUPABASE_URL: Optional[str] = os.environ.get('SUPABASE_URL') or os.environ.get('NEXT_PUBLIC_SUPABASE_URL')
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = os.environ.get('SUPABASE_SERVICE_ROLE_KEY')
    SUPABASE_ANON_KEY: Optional[str] = os.environ.get('SUPABASE_ANON_KEY') or SUPABASE_SERVICE_ROLE_KEY
    SUPABASE_TIMEOUT: int = int(os.environ.get('SUPABASE_TIMEOUT', 30))

    # --- Local store (development / tests) ---
    LOCAL_DATABASE_URL: str = os.environ.get('LOCAL_DATABASE_URL', 'sqlite:///marketplace.db')

    # --- Vendor invitations ---
    RESEND_API_KEY: Optional[str] = os.environ.get('RESEND_API_KEY')
    INVITATION_FROM_EMAIL: str = os.environ.get('INVITATION_FROM_EMAIL', 'Production Schedule <onboarding@resend.dev>')
    APP_BASE_URL: str = os.environ.get('APP_BASE_URL') or SUPABASE_URL or 'https://your-app.com'
    INVITATION_EXPIRY_DAYS: int = int(os.environ.get('INVITATION_EXPIRY_DAYS', 7))

    # --- Server ---
    HOST: str = os.environ.get('HOST', '0.0.0.0')
    PORT: int = int(os.environ.get('PORT', 5000))
    DEBUG: bool = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
    LOG_LEVEL: str = os.environ.get('LOG_LEVEL', 'INFO').upper()
    LOG_FILE: str = os.environ.get('LOG_FILE', 'app.log')

    CORS_ORIGINS_STR: str = os.environ.get('CORS_ORIGINS', '*')

    @property
    def ALLOWED_ORIGINS(self) -> list:
        origins = [origin.strip() for origin in self.CORS_ORIGINS_STR.split(',') if origin.strip()]
        return origins or ['*']

    @property
    def USE_HOSTED_BACKEND(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_SERVICE_ROLE_KEY)


settings = Settings()
