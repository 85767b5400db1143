"""Profile store, parameter adaptation and encoder command construction."""
