import os
from dotenv import load_dotenv
load_dotenv()


def _env_bool(name, default):
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///fieldtriage.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # background execution of pipeline runs: rq / thread / sync
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    JOB_BACKEND = os.getenv("JOB_BACKEND", "rq")
    JOB_QUEUE = os.getenv("JOB_QUEUE", "default")

    # artifact store
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local")
    LOCAL_STORAGE_DIR = os.getenv("LOCAL_STORAGE_DIR", "./uploads")
    S3_ENDPOINT = os.getenv("S3_ENDPOINT")
    S3_REGION = os.getenv("S3_REGION")
    S3_BUCKET = os.getenv("S3_BUCKET")
    S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")
    S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_UPLOAD_BYTES", 50 * 1024 * 1024))

    # speech-to-text and analysis services
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    DEEPGRAM_API_KEY = os.getenv("DEEPGRAM_API_KEY")
    TRANSCRIPTION_BACKEND = os.getenv("TRANSCRIPTION_BACKEND", "whisper")
    WHISPER_MODEL = os.getenv("WHISPER_MODEL", "whisper-1")
    ANALYSIS_BACKEND = os.getenv("ANALYSIS_BACKEND", "openai" if os.getenv("OPENAI_API_KEY") else "heuristic")
    ANALYSIS_MODEL = os.getenv("ANALYSIS_MODEL", "gpt-4o-mini")
    ANALYSIS_MAX_ATTEMPTS = int(os.getenv("ANALYSIS_MAX_ATTEMPTS", 3))
    EXTERNAL_TIMEOUT_SEC = float(os.getenv("EXTERNAL_TIMEOUT_SEC", 60))

    # delivery channels
    AUTO_DISPATCH_DELIVERIES = _env_bool("AUTO_DISPATCH_DELIVERIES", True)
    SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
    MAIL_FROM = os.getenv("MAIL_FROM", "alerts@example.com")
    MAIL_FROM_NAME = os.getenv("MAIL_FROM_NAME", "FieldTriage Alerts")
    TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
    TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
