"""Configuration, logging, errors and shared models."""
