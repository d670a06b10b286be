"""Rich renderers for CLI output."""
