# backend/agrostock/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/agrostock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///agrostock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Deadline applied to advance payments created without one (hours, 0 = none)
    ADVANCE_DEFAULT_DEADLINE_HOURS = int(os.environ.get("ADVANCE_DEFAULT_DEADLINE_HOURS", "0"))

    # Roles allowed to read system-wide stock totals
    PRIVILEGED_ROLES = tuple(
        role.strip()
        for role in os.environ.get("PRIVILEGED_ROLES", "admin").split(",")
        if role.strip()
    )
