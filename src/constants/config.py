from fastapi.security import OAuth2PasswordBearer
from passlib.context import CryptContext

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 300000
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="auth/login",
)

ALLOWED_CONTENT_TYPES = {
    "application/pdf": "pdf",
    "image/jpeg": "image",
    "image/png": "image",
    "image/tiff": "image",
    "image/webp": "image",
}

# Conversion worker
PAGE_BATCH_SIZE = 3
PROGRESS_PAGE_COUNT_KNOWN = 10
PROGRESS_COMPLETE = 100
PAGE_RENDER_SCALE = 2.0
PAGE_JPEG_QUALITY = 80

# Two uploads with the same name are treated as duplicates within this many bytes
DUPLICATE_SIZE_TOLERANCE = 100

TRANSCRIPTION_SEPARATOR = "\n\n"
ERROR_MESSAGE_MAX_LENGTH = 500
