from __future__ import annotations

import sys
from collections import abc as cabc
from pathlib import Path
from typing import Any

import pytest


def pytest_configure() -> None:
    project_root = Path(__file__).resolve().parents[2]
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


class FakeSecretClient:
    """In-memory stand-in for the Secret Server client."""

    def __init__(
        self,
        secrets: cabc.Mapping[Any, dict[str, Any]] | None = None,
        failures: cabc.Mapping[Any, Exception] | None = None,
    ) -> None:
        self.secrets = dict(secrets or {})
        self.failures = dict(failures or {})
        self.calls: list[Any] = []

    async def fetch_secret(self, secret_id: Any) -> dict[str, Any]:
        self.calls.append(secret_id)
        if secret_id in self.failures:
            raise self.failures[secret_id]
        return self.secrets[secret_id]

    async def fetch_attachment(self, secret_id: Any, field_name: str) -> Any:
        raise NotImplementedError


def make_secret(secret_id: int, name: str, **fields: str) -> dict[str, Any]:
    """Build a raw record shaped like the client adapter's output."""

    items = {
        field_name: {
            "Id": index,
            "FieldId": 100 + index,
            "FieldName": field_name,
            "FieldDisplayName": field_name,
            "Value": value,
            "IsFile": False,
            "IsNotes": False,
            "IsPassword": field_name == "Password",
        }
        for index, (field_name, value) in enumerate(fields.items(), start=1)
    }
    return {"Id": secret_id, "Name": name, "SecretTypeId": 6001, "Items": items}


@pytest.fixture
def secret_factory() -> cabc.Callable[..., dict[str, Any]]:
    return make_secret


@pytest.fixture
def fake_client_factory() -> type[FakeSecretClient]:
    return FakeSecretClient
