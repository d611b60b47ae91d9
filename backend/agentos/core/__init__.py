"""Data-access interface, its SQLAlchemy implementation and service wiring."""
