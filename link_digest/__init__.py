"""Collects submitted links per email address and mails AI summaries in batches."""

__all__ = [
    "config",
    "models",
    "link_store",
    "dispatcher",
    "summarizer",
    "mailer",
    "email_formatter",
    "orchestrator",
    "server",
]
