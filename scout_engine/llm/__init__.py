"""Generation and embedding backend clients."""
