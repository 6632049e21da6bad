"""
Dependency wiring for the FastAPI app.

The credential cache and both upstream clients are process-wide singletons
built lazily on first use. Tests swap them out through
`app.dependency_overrides` or `reset_dependencies()`.
"""

from __future__ import annotations

from functools import partial

import requests

from relay.catalog import (
    CatalogClient,
    InMemoryCatalogClient,
    ShopifyCatalogClient,
    exchange_client_credentials,
)
from relay.config import Settings, get_settings
from relay.credentials import CredentialCache
from relay.storage import (
    B2StorageClient,
    InMemoryStorageClient,
    StorageClient,
    authorize_account,
)

_credential_cache: CredentialCache | None = None
_storage_client: StorageClient | None = None
_catalog_client: CatalogClient | None = None


def build_credential_cache(settings: Settings, http: requests.Session) -> CredentialCache:
    return CredentialCache(
        authorize_storage=partial(
            authorize_account,
            settings.b2_s3_endpoint,
            settings.b2_region,
            settings.b2_application_key_id or "",
            settings.b2_application_key or "",
            settings.b2_bucket_name or "",
            settings.b2_download_url,
            timeout=settings.request_timeout_seconds,
        ),
        exchange_catalog_token=partial(
            exchange_client_credentials,
            settings.shopify_store_domain or "",
            settings.shopify_client_id or "",
            settings.shopify_client_secret or "",
            http=http,
            timeout=settings.request_timeout_seconds,
        ),
    )


def get_credential_cache() -> CredentialCache:
    global _credential_cache
    if _credential_cache:
        return _credential_cache
    _credential_cache = build_credential_cache(get_settings(), requests.Session())
    return _credential_cache


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.storage_configured:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = B2StorageClient(
            credentials=get_credential_cache(),
            bucket_name=settings.b2_bucket_name,
        )
    return _storage_client


def get_catalog_client() -> CatalogClient:
    global _catalog_client
    if _catalog_client:
        return _catalog_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.catalog_configured:
        _catalog_client = InMemoryCatalogClient()
    else:
        _catalog_client = ShopifyCatalogClient(
            credentials=get_credential_cache(),
            store_domain=settings.shopify_store_domain,
            api_version=settings.shopify_api_version,
            timeout=settings.request_timeout_seconds,
        )
    return _catalog_client


def reset_dependencies() -> None:
    global _credential_cache, _storage_client, _catalog_client
    _credential_cache = None
    _storage_client = None
    _catalog_client = None
