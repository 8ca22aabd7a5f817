"""Configuration settings for Veritas account tooling."""

import os
import sys
from pathlib import Path
from dotenv import load_dotenv


def get_user_data_dir() -> Path:
    """
    Get the directory for user-writable data (auth tokens, cached preferences).

    Override with VERITAS_DATA_DIR. Otherwise uses the platform's standard
    application-data location.

    Returns:
        Path to the user data directory.
    """
    override = os.environ.get("VERITAS_DATA_DIR")
    if override:
        return Path(override)

    if sys.platform == 'darwin':
        # macOS: ~/Library/Application Support/Veritas
        return Path.home() / "Library" / "Application Support" / "Veritas"
    elif sys.platform == 'win32':
        # Windows: %APPDATA%/Veritas
        appdata = os.environ.get('APPDATA')
        if appdata:
            return Path(appdata) / "Veritas"
        return Path.home() / "AppData" / "Roaming" / "Veritas"
    # Linux: ~/.local/share/Veritas
    return Path.home() / ".local" / "share" / "Veritas"


# Load environment variables from .env in the project root
# (found regardless of current working directory)
_env_path = Path(__file__).parent / ".env"
load_dotenv(_env_path)

# User data directory (auth tokens, local preference cache)
USER_DATA_DIR = get_user_data_dir()

# Supabase Configuration (auth, profiles, preferences, case files)
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")

# Where the verification email sends the user after sign-up
EMAIL_REDIRECT_URL = os.getenv("EMAIL_REDIRECT_URL", "https://veritas-henna.vercel.app")

# Local files
AUTH_FILE = USER_DATA_DIR / "auth.json"
PREFERENCES_CACHE_FILE = USER_DATA_DIR / "preferences_cache.json"


# Save exports to user's Downloads folder (with fallback)
def _get_export_dir() -> Path:
    """Get the export directory with fallback if Downloads doesn't exist."""
    downloads = Path.home() / "Downloads"
    if downloads.exists() and downloads.is_dir():
        return downloads
    documents = Path.home() / "Documents"
    if documents.exists() and documents.is_dir():
        return documents
    # Last resort: user data directory
    return USER_DATA_DIR / "exports"


EXPORT_DIR = _get_export_dir()
EXPORT_FILE_PREFIX = "veritas-data-export"

# Remote tables and procedures
TABLE_PROFILES = "profiles"
TABLE_PREFERENCES = "user_preferences"
TABLE_CASES = "case_files"
TABLE_EVIDENCE = "evidence_items"
RPC_DELETE_USER = "delete_user"

# Credential policy
MIN_PASSWORD_LENGTH = 6

# Typed by the user before an account is permanently deleted
DELETE_CONFIRMATION = "DELETE"

# Theme preferences
THEME_LIGHT = "light"
THEME_DARK = "dark"
THEMES = (THEME_LIGHT, THEME_DARK)
DEFAULT_THEME = THEME_LIGHT
THEME_CACHE_KEY = "theme"

# Notification preferences
NOTIFICATION_FREQUENCIES = ("immediate", "daily", "weekly")
DEFAULT_NOTIFICATIONS = {
    "email_notifications": True,
    "sms_notifications": False,
    "notification_frequency": "immediate",
}

# Case files
CASE_STATUSES = ("draft", "active", "submitted", "archived")
DEFAULT_CASE_STATUS = "draft"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")  # Can override in .env: DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
