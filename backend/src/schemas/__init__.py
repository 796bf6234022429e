"""Pydantic schemas shared by the API layer and storage backends."""
