"""
Object storage adapters.
"""

from .s3 import S3ObjectStorage
from .azure_blob import AzureBlobStorage

__all__ = ["S3ObjectStorage", "AzureBlobStorage"]
