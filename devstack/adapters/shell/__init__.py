"""Shell adapters — command execution and host file access."""
