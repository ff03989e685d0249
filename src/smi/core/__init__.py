"""Core definitions: constants, exceptions, types and configuration."""
