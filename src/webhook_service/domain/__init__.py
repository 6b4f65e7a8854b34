"""Domain models, enums and delivery state machine."""
