import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# postgresql+psycopg://... in production; SQLite file for local runs
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fieldtrack.db")

# Firebase Configuration
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")
# Web API key is needed for the Identity Toolkit password sign-in endpoint
FIREBASE_WEB_API_KEY = os.getenv("FIREBASE_WEB_API_KEY")
FIREBASE_CREDENTIALS_FILE = os.getenv("FIREBASE_CREDENTIALS_FILE")

# Cloudflare R2 Configuration
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY")
R2_BUCKET_NAME = os.getenv("R2_BUCKET_NAME", "fieldtrack")
# Public bucket domain (custom domain or r2.dev) used to build stable image URLs
R2_PUBLIC_URL = os.getenv("R2_PUBLIC_URL", f"https://{R2_BUCKET_NAME}.r2.dev").rstrip("/")

# Sign-up codes decide the role a new account is created with
ADMIN_SIGNUP_CODE = os.getenv("ADMIN_SIGNUP_CODE", "")
USER_SIGNUP_CODE = os.getenv("USER_SIGNUP_CODE", "")

# Image pipeline limits
IMAGE_MAX_BYTES = int(os.getenv("IMAGE_MAX_BYTES", str(2 * 1024 * 1024)))  # 2MB after compression
IMAGE_MAX_DIMENSION = int(os.getenv("IMAGE_MAX_DIMENSION", "2048"))
IMAGE_INITIAL_QUALITY = float(os.getenv("IMAGE_INITIAL_QUALITY", "0.8"))
IMAGE_UPLOAD_MAX_BYTES = int(os.getenv("IMAGE_UPLOAD_MAX_BYTES", str(20 * 1024 * 1024)))  # raw upload

# Frontend base URL for CORS
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
