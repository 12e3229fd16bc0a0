"""Secret backend providers and the registry that holds them."""
