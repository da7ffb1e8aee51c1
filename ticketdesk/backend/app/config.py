# ticketdesk/backend/app/config.py
import os

from dotenv import load_dotenv

load_dotenv()

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "480"))

# Object storage (one directory per bucket under STORAGE_ROOT)
STORAGE_ROOT = os.getenv("STORAGE_ROOT", "./storage")
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "ticket-archivos")
CHAT_STORAGE_BUCKET = os.getenv("CHAT_STORAGE_BUCKET", "chat-archivos")
SIGNED_URL_TTL = int(os.getenv("SIGNED_URL_TTL", "3600"))

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_MB", "50")) * 1024 * 1024
MAX_FILES_PER_REQUEST = 10
ALLOWED_MIME_TYPES = {
    "image/jpeg", "image/png", "image/gif", "image/webp",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/zip", "application/x-zip-compressed",
    "text/plain", "text/csv",
    "video/mp4", "video/quicktime",
    "audio/mpeg", "audio/wav",
}

# SMTP; leaving EMAIL_HOST empty disables outbound email
EMAIL_HOST = os.getenv("EMAIL_HOST")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "465"))
EMAIL_USER = os.getenv("EMAIL_USER")
EMAIL_PASS = os.getenv("EMAIL_PASS")
EMAIL_FROM = os.getenv("EMAIL_FROM") or EMAIL_USER

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", FRONTEND_URL).split(",")

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
