from .memory import InMemoryMembershipStore

__all__ = ["InMemoryMembershipStore"]
