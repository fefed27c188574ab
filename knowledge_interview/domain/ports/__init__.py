# Contracts for collaborators the engine calls but does not own:
# text generation, quota, profile storage and instance storage.

from .collaborators import (
    QuotaDecision, TextCompletion, QuotaGate,
    DurableProfileStore, DurableInstanceStore
)

__all__ = [
    "QuotaDecision", "TextCompletion", "QuotaGate",
    "DurableProfileStore", "DurableInstanceStore"
]
