"""Repository and gateway implementations for the storefront domain."""
