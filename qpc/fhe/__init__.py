"""Encrypted value type and decrypt capabilities."""

from .acl import CapabilityMap, resource_id
from .backend import Ciphertext, EncryptedValueType, MockFheBackend, generate_key

__all__ = [
    "CapabilityMap",
    "resource_id",
    "Ciphertext",
    "EncryptedValueType",
    "MockFheBackend",
    "generate_key",
]
