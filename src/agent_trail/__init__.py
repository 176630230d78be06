"""AgentTrail - browse and live-follow AI coding agent sessions."""

__version__ = "0.1.0"
