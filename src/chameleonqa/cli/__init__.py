"""ChameleonQA command-line interface."""
