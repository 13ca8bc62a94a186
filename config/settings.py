#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Settings - Centralized configuration management
"""

from pathlib import Path
from typing import Dict
from pydantic_settings import BaseSettings

from .constants import (
    RELAY_BASE_URL,
    RELAY_TIMEOUT_SECONDS,
    POLL_FAST_INTERVAL_SECONDS,
    POLL_SLOW_INTERVAL_SECONDS,
    POLL_STALL_THRESHOLD,
    BATCH_SETTLE_DELAY_SECONDS,
    SUBMIT_MAX_RETRIES,
    SUBMIT_RETRY_DELAY,
    PREFERENCES_DB,
    HEADER_USER_ID,
    HEADER_USER_ROLE,
)


# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings"""

    # ========== Relay ==========
    relay_base_url: str = RELAY_BASE_URL
    request_timeout: float = RELAY_TIMEOUT_SECONDS

    # ========== Identity ==========
    # Forwarded as per-request headers; authentication itself happens upstream
    user_id: str = ""
    user_role: str = ""

    # ========== Polling ==========
    poll_fast_interval: float = POLL_FAST_INTERVAL_SECONDS
    poll_slow_interval: float = POLL_SLOW_INTERVAL_SECONDS
    poll_stall_threshold: int = POLL_STALL_THRESHOLD

    # ========== Batch ==========
    settle_delay: float = BATCH_SETTLE_DELAY_SECONDS

    # ========== Submission ==========
    submit_max_retries: int = SUBMIT_MAX_RETRIES
    submit_retry_delay: float = SUBMIT_RETRY_DELAY

    # ========== Preferences ==========
    preferences_db: Path = BASE_DIR / PREFERENCES_DB

    class Config:
        env_prefix = "POLICY_JOBS_"
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env that aren't defined in model

    def identity_headers(self) -> Dict[str, str]:
        """Headers identifying the caller to the relay."""
        headers = {}
        if self.user_id:
            headers[HEADER_USER_ID] = self.user_id
        if self.user_role:
            headers[HEADER_USER_ROLE] = self.user_role
        return headers

    def print_config(self):
        """Print configuration summary"""
        print("\n" + "=" * 70)
        print("CONFIGURATION")
        print("=" * 70)
        print(f"Relay:           {self.relay_base_url}")
        print(f"Timeout:         {self.request_timeout}s")
        print(f"User:            {self.user_id or '-'} ({self.user_role or '-'})")
        print(f"Poll intervals:  {self.poll_fast_interval}s / {self.poll_slow_interval}s")
        print(f"Stall threshold: {self.poll_stall_threshold}")
        print(f"Settle delay:    {self.settle_delay}s")
        print("=" * 70 + "\n")


# Global settings instance
settings = Settings()
