"""
Azure Blob Storage client.
"""

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO, List, Union

from azure.core.credentials import AzureNamedKeyCredential
from azure.core.exceptions import AzureError
from azure.storage.blob import BlobProperties, BlobServiceClient, ContainerProperties

from ...infrastructure.exceptions import StorageError

if TYPE_CHECKING:
    from ...framework.configuration.store import ConfigurationStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def blob_name(folder: str, name: str) -> str:
    """Join a virtual folder such as ``"reports/2024"`` and a blob name."""
    folder = folder.strip("/")
    return f"{folder}/{name}" if folder else name


class AzureBlobStorage:
    """
    Thin wrapper over the Azure ``BlobServiceClient`` using shared-key auth.

    Blob names may carry a virtual folder prefix; every operation taking a
    ``folder`` joins it to the blob name with ``/``. Every SDK failure
    surfaces as StorageError, with the container reported as the bucket.
    """

    def __init__(
        self,
        account_name: str = "",
        account_key: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        address: str = "",
        client: Any = None
    ):
        self.account_name = account_name
        self.timeout = timeout
        self.address = address or f"https://{account_name}.blob.core.windows.net/"

        if client is None:
            if not account_name or not account_key:
                raise StorageError("Azure account name and key are required", operation="connect")
            client = BlobServiceClient(
                account_url=self.address,
                credential=AzureNamedKeyCredential(account_name, account_key),
                connection_timeout=timeout,
                read_timeout=timeout
            )
        self.client = client

        logger.info(f"Initialized AzureBlobStorage (endpoint: {self.address})")

    @classmethod
    def from_config(cls, config: "ConfigurationStore") -> "AzureBlobStorage":
        """
        Build a client from ``azure_account_name``, ``azure_account_key``,
        ``azure_timeout`` and, for emulators such as Azurite, ``azure_address``.
        """
        timeout = config.get_duration("azure_timeout").total_seconds()
        return cls(
            account_name=config.get_string("azure_account_name"),
            account_key=config.get_string("azure_account_key"),
            timeout=timeout if timeout > 0 else DEFAULT_TIMEOUT,
            address=config.get_string("azure_address")
        )

    def create_container(self, container: str) -> None:
        try:
            self.client.create_container(container)
        except AzureError as e:
            raise StorageError(f"Failed to create container: {e}", operation="create_container", bucket=container, cause=e) from e

        logger.info(f"Created container {container}")

    def delete_container(self, container: str) -> None:
        try:
            self.client.delete_container(container)
        except AzureError as e:
            raise StorageError(f"Failed to delete container: {e}", operation="delete_container", bucket=container, cause=e) from e

        logger.info(f"Deleted container {container}")

    def upload_blob(self, container: str, name: str, body: Union[bytes, BinaryIO], folder: str = "") -> str:
        """
        Upload ``body``, replacing any existing blob with the same name.

        Returns:
            The full blob name
        """
        full_name = blob_name(folder, name)
        try:
            self.client.get_blob_client(container, full_name).upload_blob(body, overwrite=True)
        except AzureError as e:
            raise StorageError(f"Failed to upload blob: {e}", operation="upload_blob", bucket=container, key=full_name, cause=e) from e

        logger.debug(f"Uploaded blob {container}/{full_name}")
        return full_name

    def upload_folder(self, container: str, local_folder: Union[str, Path], folder: str = "") -> List[str]:
        """
        Upload every file below ``local_folder`` into the virtual ``folder``.

        Blob names keep the file paths relative to ``local_folder``.

        Returns:
            The uploaded blob names
        """
        root = Path(local_folder)
        if not root.is_dir():
            raise StorageError(f"Not a directory: {root}", operation="upload_folder", bucket=container)

        names = []
        for directory, _, files in os.walk(root):
            for file_name in sorted(files):
                path = Path(directory) / file_name
                full_name = blob_name(folder, path.relative_to(root).as_posix())
                try:
                    with open(path, 'rb') as body:
                        self.client.get_blob_client(container, full_name).upload_blob(body, overwrite=True)
                except OSError as e:
                    raise StorageError(f"Failed to open file {path}: {e}", operation="upload_folder", bucket=container, key=full_name, cause=e) from e
                except AzureError as e:
                    raise StorageError(f"Failed to upload file: {e}", operation="upload_folder", bucket=container, key=full_name, cause=e) from e
                names.append(full_name)

        logger.info(f"Uploaded {len(names)} files from {root} to container {container}")
        return names

    def download_blob(self, container: str, name: str, folder: str = "") -> bytes:
        full_name = blob_name(folder, name)
        try:
            data = self.client.get_blob_client(container, full_name).download_blob().readall()
        except AzureError as e:
            raise StorageError(f"Failed to download blob: {e}", operation="download_blob", bucket=container, key=full_name, cause=e) from e

        logger.debug(f"Downloaded blob {container}/{full_name} ({len(data)} bytes)")
        return data

    def delete_blob(self, container: str, name: str, folder: str = "") -> None:
        full_name = blob_name(folder, name)
        try:
            self.client.get_blob_client(container, full_name).delete_blob()
        except AzureError as e:
            raise StorageError(f"Failed to delete blob: {e}", operation="delete_blob", bucket=container, key=full_name, cause=e) from e

        logger.debug(f"Deleted blob {container}/{full_name}")

    def list_containers(self) -> List[ContainerProperties]:
        try:
            return list(self.client.list_containers())
        except AzureError as e:
            raise StorageError(f"Failed to list containers: {e}", operation="list_containers", cause=e) from e

    def list_blobs(self, container: str, folder: str = "") -> List[BlobProperties]:
        """List every blob in ``container``, optionally under a virtual folder."""
        prefix = f"{folder.strip('/')}/" if folder.strip("/") else None
        try:
            return list(self.client.get_container_client(container).list_blobs(name_starts_with=prefix))
        except AzureError as e:
            raise StorageError(f"Failed to list blobs from container: {e}", operation="list_blobs", bucket=container, cause=e) from e
