"""
Test suite for the catalog importer.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_embedded_images.py -v
"""
