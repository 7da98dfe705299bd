"""Domain layer: sessions, operation queue and workbook rules."""
