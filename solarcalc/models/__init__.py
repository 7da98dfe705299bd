"""Request/response schemas and operation payloads."""
