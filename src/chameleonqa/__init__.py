"""ChameleonQA — refactor recorded Playwright scripts into a repository's Page Object Model."""

__version__ = "0.3.0"
