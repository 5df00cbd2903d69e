"""Command-line interface for idaas-broker."""
