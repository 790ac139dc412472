import logging
import os

from dotenv import load_dotenv

load_dotenv()

# --- Storage ---
LEDGER_DB = os.getenv("LEDGER_DB", "ledger.db").strip()
BACKUP_DIR = os.getenv("BACKUP_DIR", "Data_Backups").strip()
BACKUP_KEEP = int(os.getenv("BACKUP_KEEP", "30"))

# --- Business Profile Defaults (editable later in Setup) ---
DEFAULT_COUNTRY_CODE = os.getenv("DEFAULT_COUNTRY_CODE", "+91").strip()
DEFAULT_BUSINESS_NAME = os.getenv("BUSINESS_NAME", "Momai Cattle Feed").strip()
DEFAULT_UPI_ID = os.getenv("UPI_ID", "").strip()

# --- Cloud Sync (Google Apps Script Web App) ---
SHEET_URL = os.getenv("SHEET_URL", "").strip()
SYNC_TIMEOUT = float(os.getenv("SYNC_TIMEOUT", "15"))
AUTO_REFRESH_SECONDS = int(os.getenv("AUTO_REFRESH_SECONDS", "0"))

# --- AI Insights ---
# Check both key names, same as the Google SDK does
GEMINI_API_KEY = (os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or "").strip()
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash").strip()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()


def setup_logging(level=None):
    logging.basicConfig(
        level=level or LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
