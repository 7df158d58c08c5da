"""Core — provisioning logic, independent of how commands are executed."""
