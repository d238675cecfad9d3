"""Template persistence with SQLAlchemy 2.0 async ORM."""
