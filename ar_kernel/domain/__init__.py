"""Pure domain primitives: clock, money, workflow."""
