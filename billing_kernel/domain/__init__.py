"""Pure domain layer: no I/O, no ORM, no wall-clock access except SystemClock."""
