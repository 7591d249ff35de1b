"""Interactive command-line client for Livenotes."""
