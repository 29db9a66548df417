from __future__ import annotations

import asyncio
import logging
import os

from google.cloud import firestore

from feeswap.common import log_event

from .firestore_ops import FirestoreStorageOps
from .settings import StorageSettings


class StorageGateway(FirestoreStorageOps):
    def __init__(self, settings: StorageSettings, logger: logging.Logger) -> None:
        self.settings = settings
        self._logger = logger
        self._firestore: firestore.Client | None = None

    async def connect(self) -> None:
        firebase_credentials = os.getenv("FIREBASE_CREDENTIALS")
        if firebase_credentials and not os.getenv("GOOGLE_APPLICATION_CREDENTIALS"):
            os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = firebase_credentials

        self._firestore = firestore.Client(project=self.settings.firestore_project_id)
        log_event(
            self._logger,
            level="info",
            event="firestore_connected",
            message="Connected to Firestore",
            project_id=self.settings.firestore_project_id,
            quotes_collection=self.settings.quotes_collection,
        )

    async def healthcheck(self) -> None:
        client = self._client()
        await asyncio.to_thread(lambda: list(client.collection(self.settings.quotes_collection).limit(1).stream()))

    async def close(self) -> None:
        if self._firestore is not None:
            await asyncio.to_thread(self._firestore.close)
            self._firestore = None
