"""Pass orchestration, subprocess execution and progress monitoring."""
