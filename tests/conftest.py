"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import Any

import pytest
from cryptography.fernet import Fernet

from crm_import import config
from crm_import.security import reset_cipher


@pytest.fixture
def encryption_key(monkeypatch: pytest.MonkeyPatch) -> str:
    """Configure a fresh Fernet key for the global cipher."""
    key = Fernet.generate_key().decode()
    monkeypatch.setattr(config, "CONNECTOR_ENCRYPTION_KEY", key)
    reset_cipher()
    yield key
    reset_cipher()


@pytest.fixture
def no_encryption_key(monkeypatch: pytest.MonkeyPatch) -> None:
    """Run with encryption unconfigured."""
    monkeypatch.setattr(config, "CONNECTOR_ENCRYPTION_KEY", None)
    reset_cipher()
    yield
    reset_cipher()


@pytest.fixture
def sample_csv() -> bytes:
    """Contacts export with a mix of types and blanks."""
    return (
        b"name,email,status,score,active,signed_up\n"
        b"Ada Lovelace,ada@example.com,LEAD,42,true,2024-01-15\n"
        b"Grace Hopper,grace@example.com,CUSTOMER,8,false,2023-11-02\n"
        b"Alan Turing,,LEAD,15,true,\n"
        b"Katherine Johnson,kj@example.com,LEAD,5,true,2024-03-01\n"
    )


@pytest.fixture
def sample_json() -> bytes:
    """API-style export with nested objects."""
    return b"""{
        "meta": {"count": 3},
        "data": [
            {"id": 1, "name": "Acme", "address": {"city": "Berlin", "zip": "10115"},
             "tags": ["b2b"], "createdAt": "2024-01-01"},
            {"id": 2, "name": "Globex", "address": {"city": "Paris", "zip": "75001"},
             "tags": [], "createdAt": "2024-02-10"},
            {"id": 3, "name": "Initech", "address": {"city": "Austin", "zip": null},
             "tags": ["smb", "tech"], "createdAt": "2024-03-05"}
        ]
    }"""


@pytest.fixture
def sample_xml() -> bytes:
    """Contacts as repeated elements with attributes."""
    return b"""<?xml version="1.0" encoding="UTF-8"?>
<export>
  <contacts>
    <contact id="1">
      <name>Ada</name>
      <score>42</score>
      <deal currency="EUR">1200.50</deal>
    </contact>
    <contact id="2">
      <name>Grace</name>
      <score>7</score>
      <deal currency="USD">300</deal>
    </contact>
  </contacts>
</export>
"""


@pytest.fixture
def contact_rows() -> list[dict[str, Any]]:
    """In-memory rows for client-side query tests."""
    return [
        {"name": "Ada", "status": "LEAD", "score": 42, "company": {"city": "London"}},
        {"name": "Grace", "status": "CUSTOMER", "score": 8, "company": {"city": "NYC"}},
        {"name": "Alan", "status": "LEAD", "score": 15, "company": {"city": "London"}},
        {"name": "Kat", "status": "LEAD", "score": 5, "company": None},
        {"name": "Linus", "status": None, "score": None, "company": {"city": "Oslo"}},
    ]
