"""Resources module - agent configuration and pause policy collaborators."""
