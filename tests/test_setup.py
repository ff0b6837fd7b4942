"""Test that the project setup is working correctly."""

import launchpad_indexer


def test_version() -> None:
    """Test that version is defined."""
    assert launchpad_indexer.__version__ == "0.1.0"


def test_import_modules() -> None:
    """Test that all submodules can be imported."""
    from launchpad_indexer import chain
    from launchpad_indexer import indexer
    from launchpad_indexer import service
    from launchpad_indexer import storage

    # Just verify imports work
    assert chain is not None
    assert indexer is not None
    assert service is not None
    assert storage is not None
