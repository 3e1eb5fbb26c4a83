"""Model Auto Generator: bootstrap ORM model files from an existing database schema."""

__version__ = "0.1.0"
