"""
Serving — FastAPI application for data loading and chat.

The routes are thin: they validate input, call the ingestion service or
the chat agent from the :class:`~finsight.serving.services.Services`
container, and map domain errors to HTTP status codes.
"""
