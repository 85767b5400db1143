"""Analysis, configuration, processing and system modules."""
