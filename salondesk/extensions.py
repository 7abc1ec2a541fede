"""Shared Flask extensions for the SalonDesk backend."""
from __future__ import annotations

from flask_sqlalchemy import SQLAlchemy

# SQLAlchemy database instance shared by every tenant-scoped model.
db = SQLAlchemy()
