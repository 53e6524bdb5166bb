"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

DEFAULT_PLUGINS: list[str] = [
    "pansearch",
    "qupansou",
    "panta",
    "hunhepan",
    "jikepan",
    "labi",
    "thepiratebay",
    "duoduo",
    "xuexizhinan",
    "nyaa",
]

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "panhub",
    "environment": "dev",
    "sources": {
        "api_base": "http://localhost:3000/api",
        "plugins": list(DEFAULT_PLUGINS),
        "default_channels": [],
    },
    "search": {
        "concurrency": 4,
        "plugin_timeout_ms": 5000,
        "timeout_slack_ms": 2000,
        "max_sessions": 100,
    },
    "http": {
        "timeout_seconds": 30.0,
        "follow_redirects": True,
        "user_agent": "PanHub/0.1.0",
        "retry_max_attempts": 3,
        "retry_backoff_base": 1.0,
        "retry_max_backoff": 30.0,
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "cache": {
        "backend": "memory",
        "dir": "./.cache/panhub",
        "redis_url": "redis://localhost:6379/0",
        "ttl_seconds": 3600,
        "max_concurrent": 10,
        "max_entries": 1000,
        "max_memory_bytes": 100 * 1024 * 1024,
    },
    "hot_searches": {
        "max_entries": 30,
        "default_limit": 30,
    },
}
