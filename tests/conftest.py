"""Root conftest — shared test configuration."""

import os

# Ensure tests never sign with a real key or pin to a real Pinata account
os.environ.setdefault("TALK2ME_SIGNER_PRIVATE_KEY", "")
os.environ.setdefault("TALK2ME_PINATA_JWT", "")
os.environ.setdefault("TALK2ME_LOG_FORMAT", "text")
