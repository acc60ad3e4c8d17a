import yaml
import os
from typing import List, Optional
from pydantic import BaseModel, Field


class DatabaseConfig(BaseModel):
    url: str


class SiteConfig(BaseModel):
    """Public identity of the forum, used in links and push payloads."""
    base_url: str = "http://localhost:3000"
    title: str = "Forum"
    description: str = ""
    notification_email: str = "noreply@forum.local"


class AlertConfig(BaseModel):
    """
    Configuration for recipient resolution and notification creation.
    """
    excerpt_length: int = 400

    # An "edited" notification is not repeated for the same post and editor
    # inside this window
    edit_notification_window_hours: int = 24

    # Direct participants of a private message without an explicit topic level
    pm_participants_watch_by_default: bool = True


class EmailConfig(BaseModel):
    enable_smtp: bool = True  # Site-wide switch for group SMTP sends
    personal_email_time_window_seconds: int = 20

    # Site SMTP used for per-user notification emails
    smtp_server: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None


class PushConfig(BaseModel):
    enabled: bool = True
    api_secret_key: str = ""
    allowed_push_urls: List[str] = Field(default_factory=list)
    request_timeout_seconds: int = 30


class QueueConfig(BaseModel):
    use_async_queue: bool = True  # Use Redis queue for async processing
    redis_url: Optional[str] = None  # Override default Redis URL
    queue_name: str = "notifications"
    post_lock_timeout_seconds: int = 60


class AppConfig(BaseModel):
    database: DatabaseConfig
    site: SiteConfig = SiteConfig()
    alerts: AlertConfig = AlertConfig()
    email: EmailConfig = EmailConfig()
    push: PushConfig = PushConfig()
    queue: QueueConfig = QueueConfig()


def load_config(config_path: str = "config.yaml") -> AppConfig:
    # If not found at relative path (e.g. running from root), try absolute or adjusted path
    if not os.path.exists(config_path):
        base_dir = os.path.dirname(os.path.abspath(__file__))
        config_path = os.path.join(base_dir, "..", "config.yaml")

    with open(config_path, "r") as f:
        data = yaml.safe_load(f) or {}

    # Allow env var override for DB URL
    env_db_url = os.environ.get("DATABASE_URL")
    if env_db_url:
        data.setdefault('database', {})
        data['database']['url'] = env_db_url

    # Allow env var override for Redis URL
    env_redis_url = os.environ.get("REDIS_URL")
    if env_redis_url:
        if not data.get('queue'):
            data['queue'] = {}
        data['queue']['redis_url'] = env_redis_url

    env_base_url = os.environ.get("BASE_URL")
    if env_base_url:
        if not data.get('site'):
            data['site'] = {}
        data['site']['base_url'] = env_base_url

    # Keep the push secret out of config files
    env_push_secret = os.environ.get("PUSH_API_SECRET_KEY")
    if env_push_secret:
        if not data.get('push'):
            data['push'] = {}
        data['push']['api_secret_key'] = env_push_secret

    return AppConfig(**data)
