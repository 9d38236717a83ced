"""HabitSync: recurring habits with shared, dual-sided tracking."""
