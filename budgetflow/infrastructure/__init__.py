"""Infrastructure layer: settings, logging, database and repositories."""
