# Fake collaborators for testing

from .fake_signer import FakeSigner

__all__ = ["FakeSigner"]
