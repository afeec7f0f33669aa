"""In-process observability stores."""
