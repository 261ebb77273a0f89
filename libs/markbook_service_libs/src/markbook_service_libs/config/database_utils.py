"""Database URL assembly shared by Markbook services."""

from __future__ import annotations

import os
from urllib.parse import quote_plus


def build_database_url(
    *,
    database_name: str,
    service_env_var_prefix: str,
    is_production: bool,
    dev_port: int,
    dev_host: str = "localhost",
    url_encode_password: bool = True,
) -> str:
    """
    Build the async PostgreSQL URL for a service database.

    Resolution order:
    1. ``{PREFIX}_DATABASE_URL`` service-specific override
    2. ``SERVICE_DATABASE_URL`` generic override
    3. Production: ``MARKBOOK_PROD_DB_HOST`` / ``MARKBOOK_PROD_DB_PORT`` /
       ``MARKBOOK_PROD_DB_PASSWORD``
    4. Development: ``dev_host`` / ``dev_port`` / ``MARKBOOK_DB_PASSWORD``

    ``MARKBOOK_DB_USER`` is required for steps 3 and 4.

    Raises:
        ValueError: If credentials are missing
    """
    override = os.getenv(f"{service_env_var_prefix}_DATABASE_URL") or os.getenv(
        "SERVICE_DATABASE_URL"
    )
    if override:
        return override

    user = os.getenv("MARKBOOK_DB_USER")
    if is_production:
        host = os.getenv("MARKBOOK_PROD_DB_HOST")
        port = os.getenv("MARKBOOK_PROD_DB_PORT", "5432")
        password = os.getenv("MARKBOOK_PROD_DB_PASSWORD")
        if not host:
            raise ValueError("MARKBOOK_PROD_DB_HOST must be set in production")
    else:
        host = dev_host
        port = str(dev_port)
        password = os.getenv("MARKBOOK_DB_PASSWORD")

    if not user or not password:
        raise ValueError(
            "Missing database credentials: MARKBOOK_DB_USER and a password variable must be set"
        )

    encoded_password = quote_plus(password) if url_encode_password else password
    return f"postgresql+asyncpg://{user}:{encoded_password}@{host}:{port}/{database_name}"
