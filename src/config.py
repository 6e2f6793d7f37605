"""Configuration settings for the MediVerify registry."""

import os


def get_postgres_uri():
    """Get PostgreSQL connection URI from environment variables."""
    host = os.environ.get("DB_HOST", "localhost")
    port = 5433 if host == "localhost" else 5432
    password = os.environ.get("DB_PASSWORD", "mediverify_pass")
    user = os.environ.get("DB_USER", "mediverify_user")
    db_name = os.environ.get("DB_NAME", "mediverify_db")
    return f"postgresql://{user}:{password}@{host}:{port}/{db_name}"


def get_redis_host_and_port():
    """Get Redis connection details from environment variables."""
    host = os.environ.get("REDIS_HOST", "localhost")
    port = int(os.environ.get("REDIS_PORT", 6379))
    return dict(host=host, port=port)


def get_redis_url():
    """Get Redis URL from environment variables."""
    redis_config = get_redis_host_and_port()
    return f"redis://{redis_config['host']}:{redis_config['port']}"


def get_store_timeout_seconds():
    """Timeout applied to every backing store round-trip (database and Redis)."""
    return float(os.environ.get("STORE_TIMEOUT_SECONDS", "5"))


def get_admin_key():
    """
    Shared admin capability token.

    No default: when ADMIN_API_KEY is unset every privileged call is refused.
    """
    return os.environ.get("ADMIN_API_KEY") or None


def get_expiry_threshold_days():
    """Default window (in days) for the expiring-soon alert."""
    return int(os.environ.get("EXPIRY_THRESHOLD_DAYS", "90"))


def get_recall_code_marker():
    """
    Legacy recall marker embedded in QR codes (e.g. "RECALL").

    Disabled unless RECALL_CODE_MARKER is set; recalls normally come from an
    explicit status change.
    """
    return os.environ.get("RECALL_CODE_MARKER") or None


def get_recall_subject_id():
    """Optional extra subject (e.g. a pharmacovigilance desk) copied on every recall alert."""
    return os.environ.get("RECALL_SUBJECT_ID") or None


def get_notification_dedup_enabled():
    """Suppress repeated unread recall alerts for the same subject and code."""
    return os.environ.get("NOTIFICATION_DEDUP", "true").lower() == "true"


def get_image_scorer_url():
    """Base URL of the external package-image scoring service."""
    host = os.environ.get("IMAGE_SCORER_HOST", "localhost")
    return f"http://{host}:8080"


def get_api_url():
    """Get API URL from environment variables."""
    host = os.environ.get("API_HOST", "localhost")
    port = int(os.environ.get("API_PORT", 8000))
    return f"http://{host}:{port}"
