"""Pure kernel domain helpers (zero I/O apart from SystemClock)."""
