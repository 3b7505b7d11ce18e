"""Pure domain values: clock, money helpers, workflow definitions."""
