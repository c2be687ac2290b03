"""Task dashboard: projects and tasks on a hosted backend, with a client-side sync layer."""

__version__ = "0.1.0"
