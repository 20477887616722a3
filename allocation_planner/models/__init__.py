"""Shared SQLAlchemy handle; every model module imports ``db`` from here."""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
