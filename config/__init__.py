"""Configuration: settings and YAML data files."""
