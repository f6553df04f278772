# config.py
# Simple centralized configuration values.
import os
from dotenv import load_dotenv

# Load .env file
load_dotenv()

DATABASE_FILE = os.getenv("DATABASE_FILE", "mentormatch.db")
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8080"))

# access token of the account the MCP bridge acts as
MCP_ACCESS_TOKEN = os.getenv("MCP_ACCESS_TOKEN", "")

ROLES = ("mentor", "mentee")

# Default matchmaking parameters
MAX_MATCH_RESULTS = 5  # how many candidate suggestions to return per user
MIN_COMMON_INTERESTS = 1  # minimum number of shared preferences to suggest someone

# Accounts
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 20
PASSWORD_MAX_BYTES = 72  # bcrypt input limit
USERNAME_MIN_LENGTH = 2
USERNAME_MAX_LENGTH = 30

# Secrets
SECRET_MIN_LENGTH = 2
SECRET_MAX_LENGTH = 150
SECRETS_LIMIT = 20

# Profile pictures
MAX_PICTURE_BYTES = int(os.getenv("MAX_PICTURE_BYTES", str(2 * 1024 * 1024)))
ALLOWED_PICTURE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}
