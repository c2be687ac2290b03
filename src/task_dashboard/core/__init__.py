"""Domain types, ports, form validation and errors shared by every layer."""
