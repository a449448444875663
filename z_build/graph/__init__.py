"""Component declarations, aliases and graph composition."""
