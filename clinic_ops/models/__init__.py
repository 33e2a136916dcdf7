"""
Clinic Rota Service
SQLAlchemy extension instance shared by every model module.

Usage:
    from clinic_ops.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
