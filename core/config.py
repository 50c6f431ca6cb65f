# core/config.py
import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv
import logging

# Load variables from .env file located in the project root directory
dotenv_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env')
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path=dotenv_path)
else:
    load_dotenv() # Fallback

class Settings(BaseSettings):
    """Loads configuration settings from environment variables and .env file."""

    # --- Supabase Configuration ---
    SUPABASE_URL: str | None = None
    SUPABASE_KEY: str | None = None # ANON key, used for OTP exchange and session clients
    SUPABASE_SERVICE_KEY: str | None = None # SERVICE_ROLE key, never sent to the browser
    DATABASE_SCHEMA: str = "public"

    # --- Tables ---
    USERS_TABLE: str = "users"
    FILES_TABLE: str = "files"
    UPLOAD_INTENTS_TABLE: str = "upload_intents"

    # --- Storage Configuration ---
    STORAGE_BUCKET: str = "storeit-files"
    TOTAL_STORAGE_BYTES: int = 2 * 1024 * 1024 * 1024 # 2GB available bucket storage
    MAX_FILE_SIZE: int = 50 * 1024 * 1024

    # --- Session Cookie ---
    SESSION_COOKIE_NAME: str = "appwrite-session"
    SESSION_COOKIE_SECURE: bool = True
    SIGN_IN_PATH: str = "/sign-in"

    # --- Accounts ---
    AVATAR_PLACEHOLDER_URL: str = "https://img.freepik.com/free-psd/3d-illustration-person-with-sunglasses_23-2149436188.jpg"

    # --- Upload Reconciliation ---
    RECONCILE_INTERVAL_SECONDS: int = int(os.getenv("RECONCILE_INTERVAL_SECONDS", 900)) # 0 disables the sweep
    RECONCILE_GRACE_SECONDS: int = int(os.getenv("RECONCILE_GRACE_SECONDS", 600))

    class Config:
        env_file = '.env'
        env_file_encoding = 'utf-8'
        extra = 'ignore'

# Instantiate settings once for import
settings = Settings()

# --- Logging Setup ---
log_level_str = os.getenv("LOG_LEVEL", "INFO").upper(); log_level = getattr(logging, log_level_str, logging.INFO)
logging.basicConfig(level=log_level, format='%(asctime)s - %(name)s - [%(levelname)s] - %(message)s', datefmt='%Y-%m-%d %H:%M:%S')
logger = logging.getLogger("StoreIt_Core")
logging.getLogger("httpx").setLevel(logging.WARNING); logging.getLogger("supabase").setLevel(logging.WARNING)
logging.getLogger("watchfiles").setLevel(logging.WARNING); logging.getLogger("gradio").setLevel(logging.WARNING)

# --- Configuration Validation Checks ---
logger.info(f"Core Settings loaded. Log Level: {log_level_str}")
if not settings.SUPABASE_URL or not settings.SUPABASE_KEY: logger.warning("Supabase URL/Key missing.")
if not settings.SUPABASE_SERVICE_KEY: logger.warning("Supabase Service Key missing. Uploads and account creation will fail.")
if not settings.STORAGE_BUCKET: logger.warning("STORAGE_BUCKET missing, using default.")
else: logger.info(f"Using Supabase Storage Bucket: {settings.STORAGE_BUCKET}")
if not settings.SESSION_COOKIE_SECURE: logger.warning("Session cookie 'secure' flag disabled. Only use this for local development.")

try: assert settings.MAX_FILE_SIZE > 0 and settings.TOTAL_STORAGE_BYTES > 0; logger.info(f"Storage Limits: Max File={settings.MAX_FILE_SIZE}, Capacity={settings.TOTAL_STORAGE_BYTES}")
except AssertionError: logger.error(f"Invalid storage limits: MAX_FILE_SIZE={settings.MAX_FILE_SIZE}, TOTAL_STORAGE_BYTES={settings.TOTAL_STORAGE_BYTES}.")
logger.info(f"Upload Reconciliation Config: Interval={settings.RECONCILE_INTERVAL_SECONDS}s, Grace={settings.RECONCILE_GRACE_SECONDS}s")
