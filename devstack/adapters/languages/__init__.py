"""Language toolchain adapters — conda and npm."""
