"""Pure domain layer: request types, validation, derived aggregates, time."""
