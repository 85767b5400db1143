"""Decision engine, pass orchestration and run context."""
