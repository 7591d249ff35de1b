"""Reference backend for Livenotes."""
