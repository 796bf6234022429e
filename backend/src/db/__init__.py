"""Database engine setup and schema migrations."""
