"""Shared utilities for idaas-broker."""
