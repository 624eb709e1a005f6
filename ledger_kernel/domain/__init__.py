"""Pure domain layer: clock, money arithmetic, financial calendar, DTOs."""
