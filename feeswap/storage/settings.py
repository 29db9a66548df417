from __future__ import annotations

import os
from dataclasses import dataclass


def _collection_name(value: str | None, default: str) -> str:
    normalized = (value or "").strip().strip("/")
    return normalized or default


@dataclass(slots=True)
class StorageSettings:
    firestore_project_id: str | None
    users_collection: str
    referrals_collection: str
    quotes_collection: str

    @classmethod
    def from_env(cls) -> "StorageSettings":
        return cls(
            firestore_project_id=os.getenv("FIRESTORE_PROJECT_ID") or None,
            users_collection=_collection_name(os.getenv("USERS_COLLECTION"), "users"),
            referrals_collection=_collection_name(os.getenv("REFERRALS_COLLECTION"), "referrals"),
            quotes_collection=_collection_name(os.getenv("QUOTES_COLLECTION"), "quotes"),
        )
