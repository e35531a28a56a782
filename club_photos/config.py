import logging
import os

import boto3
from botocore.config import Config
from dotenv import load_dotenv

load_dotenv()

AWS_REGION      = os.getenv("AWS_DEFAULT_REGION", "us-east-1")
S3_BUCKET       = os.getenv("S3_BUCKET")
# Set for MinIO or any other S3-compatible endpoint
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL")
DB_URL          = os.getenv("DATABASE_URL", "sqlite:///club_photos.db")
LOG_LEVEL       = os.getenv("LOG_LEVEL", "INFO").upper()

REDIS_URL           = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")
JOBS_BACKEND        = os.getenv("JOBS_BACKEND", "rq").lower()
IMAGE_QUEUE_NAME    = os.getenv("IMAGE_QUEUE_NAME", "image-processing")
JOB_TIMEOUT         = int(os.getenv("JOB_TIMEOUT", "300"))
JOB_MAX_RETRIES     = int(os.getenv("JOB_MAX_RETRIES", "3"))
JOB_RETRY_INTERVALS = [int(s) for s in os.getenv("JOB_RETRY_INTERVALS", "10,60,300").split(",") if s.strip()]

PRESIGNED_URL_EXPIRY = int(os.getenv("PRESIGNED_URL_EXPIRY", "3600"))
THUMBNAIL_SIZE       = int(os.getenv("THUMBNAIL_SIZE", "400"))
THUMBNAIL_QUALITY    = int(os.getenv("THUMBNAIL_QUALITY", "80"))

EXIFTOOL_PATH      = os.getenv("EXIFTOOL_PATH", "exiftool")
EXTRACTOR_TIMEOUT  = float(os.getenv("EXTRACTOR_TIMEOUT", "30"))
S3_CONNECT_TIMEOUT = float(os.getenv("S3_CONNECT_TIMEOUT", "5"))
S3_READ_TIMEOUT    = float(os.getenv("S3_READ_TIMEOUT", "60"))

SWEEP_INTERVAL        = int(os.getenv("SWEEP_INTERVAL", "60"))
REQUEUE_GRACE_SECONDS = int(os.getenv("REQUEUE_GRACE_SECONDS", "900"))

if not S3_BUCKET:
    raise RuntimeError("S3_BUCKET must be set")

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("photo_service")

# Use default AWS credential resolution (env, instance profile, etc.)
s3_client = boto3.client(
    "s3",
    region_name=AWS_REGION,
    endpoint_url=S3_ENDPOINT_URL,
    config=Config(
        connect_timeout=S3_CONNECT_TIMEOUT,
        read_timeout=S3_READ_TIMEOUT,
        retries={"max_attempts": 2},
        signature_version="s3v4",
    ),
)
