"""Application entry point and configuration."""
