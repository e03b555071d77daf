"""FibroDiário notification dispatch service."""
