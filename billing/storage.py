"""Backends holding the JSON catalog cache artifact."""

from __future__ import annotations

import logging
import os
import tempfile
from functools import lru_cache
from typing import Optional

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError  # type: ignore[import-untyped]
from azure.identity import DefaultAzureCredential  # type: ignore[import-untyped]
from azure.storage.blob import BlobServiceClient, ContentSettings  # type: ignore[import-untyped]

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class LocalCatalogStorage:
    """Catalog cache kept as a file on local disk."""

    def __init__(self, path: str):
        self.path = path

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def read(self) -> str:
        with open(self.path, "r", encoding="utf-8") as handle:
            return handle.read()

    def write(self, content: str) -> None:
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)

        # Readers must never see a half-written cache.
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".catalog-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.info("Wrote billing catalog cache to %s", self.path)


@lru_cache(maxsize=1)
def _get_blob_service_client() -> BlobServiceClient:
    connection_string = os.getenv("AZURE_STORAGE_CONNECTION_STRING")
    if connection_string:
        logger.debug("Initialising Azure Blob client via connection string")
        return BlobServiceClient.from_connection_string(connection_string)

    account_url = os.getenv("AZURE_STORAGE_ACCOUNT_URL")
    account_name = os.getenv("AZURE_STORAGE_ACCOUNT_NAME")
    if not account_url:
        if not account_name:
            raise ConfigurationError(
                "Set AZURE_STORAGE_ACCOUNT_NAME or AZURE_STORAGE_ACCOUNT_URL when using managed identity."
            )
        account_url = f"https://{account_name}.blob.core.windows.net"

    credential = DefaultAzureCredential(exclude_interactive_browser_credential=True)
    logger.debug("Initialising Azure Blob client via managed identity credential (account_url=%s)", account_url)
    return BlobServiceClient(account_url=account_url, credential=credential)


class AzureBlobCatalogStorage:
    """Catalog cache kept as a JSON blob, shared by every app instance."""

    def __init__(
        self,
        container: str,
        blob_name: str = "billing/stripe.json",
        service_client: Optional[BlobServiceClient] = None,
    ):
        self.container = container
        self.blob_name = blob_name
        self._service_client = service_client

    def _blob(self):
        service_client = self._service_client or _get_blob_service_client()
        return service_client.get_blob_client(container=self.container, blob=self.blob_name)

    def exists(self) -> bool:
        return bool(self._blob().exists())

    def read(self) -> str:
        try:
            payload = self._blob().download_blob().readall()
        except ResourceNotFoundError as exc:
            raise FileNotFoundError(f"{self.container}/{self.blob_name}") from exc
        if isinstance(payload, bytes):
            return payload.decode("utf-8")
        return payload

    def write(self, content: str) -> None:
        service_client = self._service_client or _get_blob_service_client()
        try:
            service_client.get_container_client(self.container).create_container()
        except ResourceExistsError:
            pass

        self._blob().upload_blob(
            content.encode("utf-8"),
            overwrite=True,
            content_settings=ContentSettings(content_type="application/json"),
        )
        logger.info("Stored billing catalog cache in Azure container %s as %s", self.container, self.blob_name)
