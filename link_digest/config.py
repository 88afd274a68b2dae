from __future__ import annotations

import os
from dataclasses import dataclass

# --------------------------------
# Settings

# Number of pending links that triggers a digest
LINKS_PER_EMAIL = 5

# Pause between consecutive summarization calls (seconds)
SUMMARY_DELAY_SECONDS = 2.0

DEFAULT_STORAGE_DIR = "storage/userlinks"

DIGEST_SUBJECT = "Your Article Summaries"
DIGEST_INTRO = "Here are the summaries of the articles you requested:"

DEFAULT_OPENAI_MODEL = "gpt-4.1"
OPENAI_RESPONSES_TOOLS = [{"type": "web_search_preview"}]
SUMMARY_PROMPT_TEMPLATE = (
    "Please summarize this article in 2-3 sentences: {url} "
    "and don't include any other text or links in your response"
)

DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 587

# Background batch pool
MAX_BATCH_WORKERS = 4
MAX_PENDING_BATCHES = 32
BATCH_TIMEOUT_SECONDS = 600.0

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
# --------------------------------


@dataclass
class Settings:
    openai_api_key: str
    from_email: str
    smtp_user: str | None = None
    smtp_password: str | None = None
    brevo_api_key: str | None = None
    sendgrid_api_key: str | None = None
    from_name: str = "Link Digest"
    openai_model: str = DEFAULT_OPENAI_MODEL
    smtp_host: str = DEFAULT_SMTP_HOST
    smtp_port: int = DEFAULT_SMTP_PORT
    storage_dir: str = DEFAULT_STORAGE_DIR
    links_per_email: int = LINKS_PER_EMAIL
    summary_delay_seconds: float = SUMMARY_DELAY_SECONDS
    max_batch_workers: int = MAX_BATCH_WORKERS
    max_pending_batches: int = MAX_PENDING_BATCHES
    batch_timeout_seconds: float = BATCH_TIMEOUT_SECONDS
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @staticmethod
    def from_env(from_name_default: str = "Link Digest") -> "Settings":
        def require(name: str) -> str:
            value = os.getenv(name)
            if value is None or not value.strip():
                raise ValueError(f"Environment variable {name} is required.")
            return value.strip()

        def optional_with_default(name: str, default: str) -> str:
            value = os.getenv(name)
            if value is None or not value.strip():
                return default
            return value.strip()

        def optional(name: str) -> str | None:
            value = os.getenv(name)
            if value is None or not value.strip():
                return None
            return value.strip()

        def positive_int(name: str, default: int) -> int:
            raw = optional_with_default(name, str(default))
            try:
                value = int(raw)
            except ValueError as exc:
                raise ValueError(f"Environment variable {name} must be an integer.") from exc
            if value <= 0:
                raise ValueError(f"Environment variable {name} must be positive.")
            return value

        def non_negative_float(name: str, default: float) -> float:
            raw = optional_with_default(name, str(default))
            try:
                value = float(raw)
            except ValueError as exc:
                raise ValueError(f"Environment variable {name} must be a number.") from exc
            if value < 0:
                raise ValueError(f"Environment variable {name} must not be negative.")
            return value

        brevo_api_key = optional("BREVO_API_KEY")
        sendgrid_api_key = optional("SENDGRID_API_KEY")
        smtp_user = optional("SMTP_USER")
        smtp_password = optional("SMTP_PASS")
        if brevo_api_key is None and sendgrid_api_key is None:
            # SMTP is the fallback transport and needs credentials
            smtp_user = require("SMTP_USER")
            smtp_password = require("SMTP_PASS")

        from_email = optional("FROM_EMAIL") or smtp_user
        if from_email is None:
            raise ValueError("Environment variable FROM_EMAIL is required.")

        return Settings(
            openai_api_key=require("OPENAI_API_KEY"),
            from_email=from_email,
            smtp_user=smtp_user,
            smtp_password=smtp_password,
            brevo_api_key=brevo_api_key,
            sendgrid_api_key=sendgrid_api_key,
            from_name=optional_with_default("FROM_NAME", from_name_default),
            openai_model=optional_with_default("OPENAI_MODEL", DEFAULT_OPENAI_MODEL),
            smtp_host=optional_with_default("SMTP_HOST", DEFAULT_SMTP_HOST),
            smtp_port=positive_int("SMTP_PORT", DEFAULT_SMTP_PORT),
            storage_dir=optional_with_default("STORAGE_DIR", DEFAULT_STORAGE_DIR),
            links_per_email=positive_int("LINKS_PER_EMAIL", LINKS_PER_EMAIL),
            summary_delay_seconds=non_negative_float("SUMMARY_DELAY_SECONDS", SUMMARY_DELAY_SECONDS),
            max_batch_workers=positive_int("MAX_BATCH_WORKERS", MAX_BATCH_WORKERS),
            max_pending_batches=positive_int("MAX_PENDING_BATCHES", MAX_PENDING_BATCHES),
            batch_timeout_seconds=non_negative_float("BATCH_TIMEOUT_SECONDS", BATCH_TIMEOUT_SECONDS),
            host=optional_with_default("HOST", DEFAULT_HOST),
            port=positive_int("PORT", DEFAULT_PORT),
        )
