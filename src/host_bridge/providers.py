"""
Collaborator interfaces the runtime calls into, plus credential stores.

The identity provider and the data service are supplied by the embedding
application; only the shape of the calls is fixed here.
"""

import json
from pathlib import Path
from typing import Any, Optional, Protocol

from host_bridge.models.session import Account, AuthResult, InteractionMode


class IdentityProvider(Protocol):
    async def acquire_silent(self, scopes: list[str], account: Account) -> AuthResult: ...

    async def acquire_interactive(self, scopes: list[str], mode: InteractionMode) -> AuthResult: ...


class DataService(Protocol):
    async def fetch(self, key: tuple, *, token: str) -> Any: ...

    async def mutate(self, key: tuple, value: Any, *, token: str) -> Any: ...


class CredentialStore(Protocol):
    """Durable per-origin key/value store."""

    def get(self, key: str) -> Optional[dict[str, Any]]: ...

    def set(self, key: str, value: dict[str, Any]) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryCredentialStore:
    def __init__(self, initial: Optional[dict[str, dict[str, Any]]] = None):
        self._data = dict(initial or {})

    def get(self, key: str) -> Optional[dict[str, Any]]:
        return self._data.get(key)

    def set(self, key: str, value: dict[str, Any]) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


CREDENTIALS_FILE = Path.home() / ".host_bridge" / "credentials.json"


class FileCredentialStore:
    """JSON file holding one record per origin."""

    def __init__(self, path: Path = CREDENTIALS_FILE):
        self._path = Path(path)

    def _load(self) -> dict[str, Any]:
        try:
            data = json.loads(self._path.read_text())
        except (FileNotFoundError, json.JSONDecodeError):
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2))

    def get(self, key: str) -> Optional[dict[str, Any]]:
        return self._load().get(key)

    def set(self, key: str, value: dict[str, Any]) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)

    def keys(self) -> list[str]:
        return list(self._load())


def account_record(account: Account) -> dict[str, Any]:
    return {"account": account.model_dump()}


def account_from_record(record: Optional[dict[str, Any]]) -> Optional[Account]:
    if not record or not isinstance(record.get("account"), dict):
        return None
    return Account.model_validate(record["account"])
