import asyncio
import logging
import sys
from datetime import timedelta

from azure.storage.blob.aio import BlobServiceClient

from doc_batch_translator.config import settings
from doc_batch_translator.storage import ContainerManager
from doc_batch_translator.translator import CredentialsError


async def sweep(days: int) -> list[str]:
    if not settings.storage_connection_string:
        raise CredentialsError("STORAGE_CONNECTION_STRING")
    async with BlobServiceClient.from_connection_string(settings.storage_connection_string) as service:
        return await ContainerManager(service).sweep_stale(timedelta(days=days))


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    days = int(sys.argv[1]) if len(sys.argv) > 1 else settings.stale_container_days
    deleted = asyncio.run(sweep(days))
    print(f"Stale containers deleted: {len(deleted)}")


if __name__ == "__main__":
    main()
