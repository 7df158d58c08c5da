"""System adapters — apt packages and systemd units."""
