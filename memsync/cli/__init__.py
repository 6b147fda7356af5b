"""memsync command-line interface."""
