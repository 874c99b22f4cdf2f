"""
Configuration management for the exam sheet evaluator.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Base paths
PACKAGE_DIR = Path(__file__).parent
BASE_DIR = PACKAGE_DIR.parent

# Load environment variables (.env at the repository root wins over the shell)
load_dotenv(BASE_DIR / ".env", override=True)

# Static frontend and the font cache live alongside the deployed code
PUBLIC_DIR = BASE_DIR / "public"
FONTS_DIR = PACKAGE_DIR / "fonts"

# API Configuration
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_TEMPERATURE = 0.2

# Grading defaults
DEFAULT_SUBJECT = "Kimya"

# Font provisioning
NOTO_FONT_URL = "https://github.com/googlefonts/noto-fonts/raw/main/hinted/ttf/NotoSans/NotoSans-Regular.ttf"
DEJAVU_FONT_URL = "https://github.com/dejavu-fonts/dejavu-fonts/raw/version_2_37/ttf/DejaVuSans.ttf"
FONT_DOWNLOAD_TIMEOUT = 30
# Seconds a failed font lookup is remembered before it is tried again
FONT_RETRY_INTERVAL = 60

# Server configuration
HOST = "0.0.0.0"
PORT = int(os.getenv("PORT", "3000"))
DEBUG = os.getenv("FLASK_DEBUG", "").lower() in ("1", "true", "yes")


class Config:
    """Application configuration class."""

    def __init__(self):
        self.openai_api_key = OPENAI_API_KEY
        self.openai_model = OPENAI_MODEL
        self.default_subject = DEFAULT_SUBJECT
        self.fonts_dir = str(FONTS_DIR)
        self.font_download_timeout = FONT_DOWNLOAD_TIMEOUT
        self.font_retry_interval = FONT_RETRY_INTERVAL

    def update(self, data: dict):
        for key, value in data.items():
            if hasattr(self, key):
                setattr(self, key, value)


# Global config instance
config = Config()
