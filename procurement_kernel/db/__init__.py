"""SQLAlchemy plumbing for the SQL entity store."""
