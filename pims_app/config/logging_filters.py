import logging

HEALTH_PATHS: tuple[str, ...] = ("/healthz", "/readyz")


class HealthEndpointFilter(logging.Filter):
    """Drop successful health-probe access lines; keep failing probes visible."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if not any(path in message for path in HEALTH_PATHS):
            return True
        return " 200 " not in message
