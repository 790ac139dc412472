import os
import shutil
import sys

import streamlit.web.cli as stcli

# --- PyInstaller Dependency Hooks ---
# These imports are here to force PyInstaller to bundle them,
# even though run_app.py doesn't use them directly.
# They are used by main.py which is run dynamically.
import fpdf
import google.generativeai
import httpx
import pandas
import plotly
import qrcode

import balance
import config
import database
import insights
import ledger
import links
import reconcile
import sheets_sync
import statement
# ------------------------------------


def resolve_path(path):
    """
    Get the absolute path to a resource.
    Works for dev and for PyInstaller's _MEIPASS temporary directory.
    """
    if hasattr(sys, "_MEIPASS"):
        return os.path.join(sys._MEIPASS, path)
    return os.path.join(os.getcwd(), path)


def seed_database(target_db=config.LEDGER_DB):
    """
    Copies a bundled ledger file next to the executable on first run so that
    data persists after the app closes.
    """
    if os.path.exists(target_db):
        return False
    bundled_db = resolve_path(os.path.basename(target_db))
    if not os.path.exists(bundled_db) or os.path.abspath(bundled_db) == os.path.abspath(target_db):
        return False
    try:
        shutil.copy(bundled_db, target_db)
    except OSError as e:
        print(f"Error initializing database: {e}")
        return False
    return True


if __name__ == "__main__":
    seed_database()

    # We point to the main.py inside the bundle
    main_app_path = resolve_path("main.py")

    sys.argv = [
        "streamlit",
        "run",
        main_app_path,
        "--global.developmentMode=false",
    ]

    sys.exit(stcli.main())
