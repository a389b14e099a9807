"""
Shared pytest fixtures:
- Sample runtime metadata (V14 and V15 renderings of the same runtime)
- Dynamic codec bound to the sample registry
- Isolated environment (no PALLAS_* variables leak in from the shell)
"""
from __future__ import annotations

import os

import pytest

from helpers import STANDARD_EXTENSIONS, sample_document, sample_metadata
from pallas.dynamic.codec import DynamicCodec
from pallas.metadata import Metadata


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("PALLAS_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(scope="session")
def metadata_bytes() -> bytes:
    return sample_document(14)


@pytest.fixture(scope="session")
def metadata() -> Metadata:
    return sample_metadata(14)


@pytest.fixture(scope="session")
def metadata_v15() -> Metadata:
    return sample_metadata(15)


@pytest.fixture(scope="session")
def metadata_ext() -> Metadata:
    """Same runtime, declaring the usual signed-extension list."""
    return sample_metadata(14, STANDARD_EXTENSIONS)


@pytest.fixture
def codec(metadata: Metadata) -> DynamicCodec:
    return DynamicCodec(metadata.registry)
