from datetime import datetime, timezone


def utc_now() -> str:
    # Microsecond precision so consecutive transitions get distinct updated_at values.
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
