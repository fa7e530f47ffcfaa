"""Django project configuration for the trace ingestion and query API."""
