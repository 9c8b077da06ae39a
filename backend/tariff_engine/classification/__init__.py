"""Remote classification service access: HTTP client, caches, translation, fan-out."""
