##
## WARNING: Do not make any changes to this file
## This file is used to set the environment variables
## The variables are used in the development and production environment
##
import os

from dotenv import load_dotenv

load_dotenv()


VALKEY_WORKER_URL = os.getenv("VALKEY_WORKER_URL", "redis://valkey-worker:6379")

# "redis" (default) or "memory" for single-process runs and tests
TASKIQ_BROKER = os.getenv("TASKIQ_BROKER", "redis")

# Database configuration - construct from individual env vars if available (AWS)
# Otherwise fall back to DATABASE_URL or default (local development)
DB_HOST = os.getenv("DB_HOST")
DB_USER = os.getenv("DB_USER")
DB_PASSWORD = os.getenv("DB_PASSWORD")
DB_NAME = os.getenv("DB_NAME")
DB_PORT = int(os.getenv("DB_PORT", 5432))

if DB_HOST and DB_USER and DB_PASSWORD and DB_NAME:
    DATABASE_URL = (
        f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    )
else:
    DATABASE_URL = os.environ.get(
        "DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/docflow"
    )

SECRET_KEY = os.environ.get(
    "SECRET_KEY", "09d25e094faa6ca2556c818166b7a9563b93f7099f6f0f4caa6cf63b88e8d3e7"
)

DEVELOPMENT = os.environ.get("DEVELOPMENT", False)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
JSON_LOGS = os.getenv("JSON_LOGS", "false").lower() in ("1", "true", "yes")

R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID", "r2_access_key_id")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY", "r2_secret_access_key")
R2_BUCKET_NAME = os.getenv("R2_BUCKET_NAME", "document-files")
R2_ENDPOINT_URL = os.getenv("R2_ENDPOINT_URL", "r2_endpoint_url")
R2_REGION_NAME = os.getenv("R2_REGION_NAME", "auto")
# Public bucket domain used to build retrievable URLs for stored objects
R2_PUBLIC_URL = os.getenv("R2_PUBLIC_URL", "http://localhost:8004/media")

# Seconds the upload pipeline waits for a conversion result before it stops waiting
CONVERSION_WAIT_TIMEOUT = float(os.getenv("CONVERSION_WAIT_TIMEOUT", 120))
SOURCE_DOWNLOAD_TIMEOUT = float(os.getenv("SOURCE_DOWNLOAD_TIMEOUT", 30))
