"""
PMO Platform
Database models package.

The shared ``db`` instance is created here and bound to the Flask app in
``pmo_platform.create_app``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
