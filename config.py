"""
Application Settings

Values are read from the environment (and a local .env file when present).
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")

# Security settings
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))

# Usernames that receive the admin role when they register
ADMIN_USERNAMES = frozenset(
    name.strip() for name in os.getenv("ADMIN_USERNAMES", "admin").split(",") if name.strip()
)

# Image host used for profile pictures
IMAGE_HOST_URL = os.getenv("IMAGE_HOST_URL")
IMAGE_HOST_API_KEY = os.getenv("IMAGE_HOST_API_KEY")
IMAGE_HOST_TIMEOUT = float(os.getenv("IMAGE_HOST_TIMEOUT", "30"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))
