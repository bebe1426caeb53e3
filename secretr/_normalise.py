"""Reshape Secret Server records into stable JSON structures.

The client adapter returns a secret's fields as a mapping keyed by field
name. Consumers expect a list of field entries instead, and the simplified
projection flattens that list into ``{FieldName: Value}``.
"""

from __future__ import annotations

from collections import abc as cabc
from typing import Any

from secretr._models import SecretRecord


def _is_field_entry(value: Any) -> bool:
    return isinstance(value, cabc.Mapping) and "FieldName" in value


def normalise_secret(raw: cabc.Mapping[str, Any]) -> SecretRecord:
    """Convert the keyed ``Items`` mapping into a list of field entries.

    Entries follow the mapping's key enumeration order. Items that already
    arrive as a list are kept unchanged, and a missing ``Items`` becomes an
    empty list.

    Examples
    --------
    >>> normalise_secret({"Id": 1, "Name": "db", "Items": {"Password": {"FieldName": "Password", "Value": "s3cret"}}})
    {'Id': 1, 'Name': 'db', 'Items': [{'FieldName': 'Password', 'Value': 's3cret'}]}
    >>> normalise_secret({"Id": 2, "Name": "empty", "Items": {}})["Items"]
    []
    """

    secret = dict(raw)
    items = secret.get("Items")
    if isinstance(items, cabc.Mapping):
        secret["Items"] = [items[key] for key in items.keys()]
    elif items is None:
        secret["Items"] = []
    else:
        secret["Items"] = list(items)
    return secret


def simplify_secret(secret: cabc.Mapping[str, Any]) -> SecretRecord:
    """Project a secret onto ``Name``, ``Id`` and a flat field-value mapping.

    Re-applying the projection to an already simplified record leaves its
    ``Items`` untouched.

    Examples
    --------
    >>> simple = simplify_secret({"Id": 1, "Name": "db", "Items": [{"FieldName": "Username", "Value": "app", "IsPassword": False}]})
    >>> simple
    {'Name': 'db', 'Id': 1, 'Items': {'Username': 'app'}}
    >>> simplify_secret(simple) == simple
    True
    """

    items = secret.get("Items") or []
    if isinstance(items, cabc.Mapping):
        if all(_is_field_entry(entry) for entry in items.values()) and items:
            entries: cabc.Iterable[Any] = items.values()
        else:
            return {"Name": secret.get("Name"), "Id": secret.get("Id"), "Items": dict(items)}
    else:
        entries = items
    flattened = {entry.get("FieldName"): entry.get("Value") for entry in entries}
    return {"Name": secret.get("Name"), "Id": secret.get("Id"), "Items": flattened}


__all__ = ["normalise_secret", "simplify_secret"]
