"""Google API service primitives for Drive Handover."""
