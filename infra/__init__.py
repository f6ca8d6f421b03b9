"""infra package: configuration, settings, the event cache, errors and logging."""
