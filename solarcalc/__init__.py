"""Solar calculator automation backend."""
