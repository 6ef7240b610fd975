"""Ingestion of remote documents into destination knowledge bases."""
