"""
Membership Lifecycle Platform
Database handle.

``db`` is constructed once per process and bound to each Flask app through
``db.init_app(app)`` in the application factory. Services receive it as a
constructor argument instead of importing a session.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
